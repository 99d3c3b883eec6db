"""Unit tests for the request state machine."""

import pytest

from shopfetch.aggregator import (
    RequestState,
    RequestStateMachine,
    RequestStateTransitionError,
)


def make_machine(initial: RequestState = RequestState.START) -> RequestStateMachine:
    return RequestStateMachine(
        request_id="req-1",
        key="listing:https://example.com/store",
        initial_state=initial,
    )


class TestRequestStateMachine:
    """Tests for RequestStateMachine."""

    def test_initial_state(self) -> None:
        """Test requests start in START."""
        machine = make_machine()
        assert machine.state == RequestState.START
        assert machine.request_id == "req-1"
        assert machine.is_terminal is False

    def test_listing_lifecycle(self) -> None:
        """Test the full listing path to DONE."""
        machine = make_machine()
        for state in (
            RequestState.LISTING_FETCH,
            RequestState.ITEM_FAN_OUT,
            RequestState.MERGE,
            RequestState.DONE,
        ):
            machine.transition_to(state)
        assert machine.state == RequestState.DONE
        assert machine.is_terminal is True

    def test_cache_hit_lifecycle(self) -> None:
        """Test START -> CACHE_HIT -> DONE."""
        machine = make_machine()
        machine.transition_to(RequestState.CACHE_HIT)
        machine.transition_to(RequestState.DONE)
        assert machine.state == RequestState.DONE

    def test_product_lifecycle(self) -> None:
        """Test START -> DETAIL_FETCH -> DONE."""
        machine = make_machine()
        machine.transition_to(RequestState.DETAIL_FETCH)
        machine.transition_to(RequestState.DONE)
        assert machine.is_terminal is True

    @pytest.mark.parametrize(
        ("initial", "target"),
        [
            (RequestState.START, RequestState.MERGE),
            (RequestState.START, RequestState.DONE),
            (RequestState.CACHE_HIT, RequestState.LISTING_FETCH),
            (RequestState.LISTING_FETCH, RequestState.DONE),
            (RequestState.DONE, RequestState.FAILED),
            (RequestState.FAILED, RequestState.DONE),
        ],
    )
    def test_illegal_transitions(
        self, initial: RequestState, target: RequestState
    ) -> None:
        """Test illegal transitions raise and leave state unchanged."""
        machine = make_machine(initial)
        assert machine.can_transition_to(target) is False

        with pytest.raises(RequestStateTransitionError) as exc_info:
            machine.transition_to(target)

        assert exc_info.value.from_state == initial
        assert exc_info.value.to_state == target
        assert machine.state == initial

    def test_advance_stops_after_failure(self) -> None:
        """Test advance reports an abandoned request instead of raising."""
        machine = make_machine()
        machine.transition_to(RequestState.LISTING_FETCH)
        machine.fail()

        assert machine.advance(RequestState.ITEM_FAN_OUT) is False
        assert machine.state == RequestState.FAILED

    def test_advance_moves_forward(self) -> None:
        """Test advance transitions a live request."""
        machine = make_machine()
        assert machine.advance(RequestState.LISTING_FETCH) is True
        assert machine.state == RequestState.LISTING_FETCH

    def test_fail_is_idempotent(self) -> None:
        """Test failing twice, or after DONE, is a no-op."""
        machine = make_machine()
        machine.fail()
        machine.fail()
        assert machine.state == RequestState.FAILED

        done = make_machine(RequestState.MERGE)
        done.transition_to(RequestState.DONE)
        done.fail()
        assert done.state == RequestState.DONE
