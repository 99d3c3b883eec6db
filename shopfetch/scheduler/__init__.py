"""Bounded-concurrency scheduling."""

from shopfetch.scheduler.gate import DEFAULT_CONCURRENCY_LIMIT, ConcurrencyGate


__all__ = [
    "DEFAULT_CONCURRENCY_LIMIT",
    "ConcurrencyGate",
]
