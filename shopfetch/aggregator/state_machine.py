"""State machine for one aggregation request."""

import threading
from enum import Enum

import structlog


logger = structlog.get_logger()


class RequestState(str, Enum):
    """State of a request inside the aggregator.

    States represent the lifecycle of a single request:
    - START: Request accepted, cache not yet consulted
    - CACHE_HIT: Fresh cached value found
    - LISTING_FETCH: Fetching and extracting the listing document
    - ITEM_FAN_OUT: Detail tasks submitted and awaited
    - MERGE: Assembling item outcomes in listing order
    - DETAIL_FETCH: Fetching a single product document
    - DONE: Result returned
    - FAILED: Request aborted with an error
    """

    START = "START"
    CACHE_HIT = "CACHE_HIT"
    LISTING_FETCH = "LISTING_FETCH"
    ITEM_FAN_OUT = "ITEM_FAN_OUT"
    MERGE = "MERGE"
    DETAIL_FETCH = "DETAIL_FETCH"
    DONE = "DONE"
    FAILED = "FAILED"


# Valid state transitions
_VALID_TRANSITIONS: dict[RequestState, set[RequestState]] = {
    RequestState.START: {
        RequestState.CACHE_HIT,
        RequestState.LISTING_FETCH,
        RequestState.DETAIL_FETCH,
        RequestState.FAILED,
    },
    RequestState.CACHE_HIT: {RequestState.DONE, RequestState.FAILED},
    RequestState.LISTING_FETCH: {RequestState.ITEM_FAN_OUT, RequestState.FAILED},
    RequestState.ITEM_FAN_OUT: {RequestState.MERGE, RequestState.FAILED},
    RequestState.MERGE: {RequestState.DONE, RequestState.FAILED},
    RequestState.DETAIL_FETCH: {RequestState.DONE, RequestState.FAILED},
    RequestState.DONE: set(),  # Terminal state
    RequestState.FAILED: set(),  # Terminal state
}


class RequestStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(
        self,
        request_id: str,
        from_state: RequestState,
        to_state: RequestState,
    ) -> None:
        """Initialize the transition error.

        Args:
            request_id: Identifier of the request.
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.request_id = request_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal state transition for request '{request_id}': "
            f"{from_state.value} -> {to_state.value}"
        )


class RequestStateMachine:
    """Manages state transitions for one request.

    Enforces valid transitions and logs all state changes. Transitions are
    serialized: the pipeline thread advances the request while the caller
    thread may fail it when the overall deadline fires.
    """

    def __init__(
        self,
        request_id: str,
        key: str,
        initial_state: RequestState = RequestState.START,
    ) -> None:
        """Initialize the state machine.

        Args:
            request_id: Identifier for the request.
            key: Cache key of the request.
            initial_state: Starting state.
        """
        self._request_id = request_id
        self._state = initial_state
        self._lock = threading.RLock()
        self._log = logger.bind(
            component="aggregator",
            request_id=request_id,
            key=key,
        )

    @property
    def request_id(self) -> str:
        """Get the request identifier."""
        return self._request_id

    @property
    def state(self) -> RequestState:
        """Get the current state."""
        with self._lock:
            return self._state

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        with self._lock:
            return self._state in (RequestState.DONE, RequestState.FAILED)

    def can_transition_to(self, target: RequestState) -> bool:
        """Check if a transition to the target state is valid.

        Args:
            target: The target state.

        Returns:
            True if the transition is valid.
        """
        with self._lock:
            return target in _VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: RequestState) -> None:
        """Transition to a new state.

        Args:
            target: The target state.

        Raises:
            RequestStateTransitionError: If the transition is invalid.
        """
        with self._lock:
            if not self.can_transition_to(target):
                self._log.error(
                    "illegal_state_transition",
                    from_state=self._state.value,
                    to_state=target.value,
                )
                raise RequestStateTransitionError(
                    request_id=self._request_id,
                    from_state=self._state,
                    to_state=target,
                )

            old_state = self._state
            self._state = target

        self._log.debug(
            "state_transition",
            from_state=old_state.value,
            to_state=target.value,
        )

    def advance(self, target: RequestState) -> bool:
        """Transition unless the request already reached a terminal state.

        Args:
            target: The target state.

        Returns:
            False if the request was already terminal (abandoned).
        """
        with self._lock:
            if self.is_terminal:
                return False
            self.transition_to(target)
            return True

    def fail(self) -> None:
        """Move to FAILED unless already terminal."""
        with self._lock:
            if not self.is_terminal:
                self.transition_to(RequestState.FAILED)
