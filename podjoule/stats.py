"""Unsigned 64-bit counters that track a per-interval delta and a running aggregate."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

MAX_UINT64 = (1 << 64) - 1

DELTA_PREFIX = "curr_"
AGGR_PREFIX = "total_"


def _wrap(value: int) -> int:
    """Reduce a value modulo 2**64, as unsigned 64-bit arithmetic does."""
    return value & MAX_UINT64


def _check_uint64(value: int) -> int:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"value {value} does not fit in an unsigned 64-bit integer")
    return value


class StatOverflowError(ArithmeticError):
    """Raised when an aggregated counter reaches the 64-bit limit and is reset to 0."""

    def __init__(self, message: str = "the aggregated value has overflowed") -> None:
        super().__init__(message)


@dataclass
class UInt64Stat:
    """A counter holding the value read in the last interval and the running total."""

    aggr: int = 0
    delta: int = 0

    def __str__(self) -> str:
        return f"{self.delta} ({self.aggr})"

    def reset_delta(self) -> None:
        """Zero the delta, keeping the aggregate."""
        self.delta = 0

    def add_new_delta(self, new_delta: int) -> None:
        """Add a freshly read delta to the current one (e.g. summing processes)."""
        self.set_new_delta_value(new_delta, True)

    def set_new_delta(self, new_delta: int) -> None:
        """Replace the current delta with a freshly read one."""
        self.set_new_delta_value(new_delta, False)

    def set_new_delta_value(self, new_delta: int, accumulate: bool) -> None:
        """Sum or replace the delta and add it to the aggregate.

        A zero delta is ignored. If the aggregate reaches the 64-bit limit it
        is reset to 0 and StatOverflowError is raised.
        """
        _check_uint64(new_delta)
        if new_delta == 0:
            return
        self.delta = _wrap(self.delta + new_delta) if accumulate else new_delta
        self.aggr = _wrap(self.aggr + new_delta)
        if self.aggr == MAX_UINT64:
            self.aggr = 0
            raise StatOverflowError()

    def set_new_aggr(self, new_aggr: int) -> None:
        """Store a freshly read aggregate, deriving the delta from the previous one.

        Zero and unchanged values are ignored. A delta is only derived when a
        previous aggregate exists and the new one is larger.
        """
        _check_uint64(new_aggr)
        if new_aggr == 0 or new_aggr == self.aggr:
            return
        if new_aggr == MAX_UINT64:
            self.aggr = 0
            raise StatOverflowError()
        old_aggr = self.aggr
        self.aggr = new_aggr
        if 0 < old_aggr < new_aggr:
            self.delta = new_aggr - old_aggr


@dataclass
class UInt64StatCollection:
    """A keyed collection of counters, e.g. one per package, sensor or device."""

    stats: dict[str, UInt64Stat] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.sum_all_delta_values()} ({self.sum_all_aggr_values()})"

    def _stat(self, key: str) -> UInt64Stat:
        return self.stats.setdefault(key, UInt64Stat())

    def set_aggr_stat(self, key: str, new_aggr: int) -> None:
        """Set a new aggregate for key, creating the counter if needed."""
        try:
            self._stat(key).set_new_aggr(new_aggr)
        except StatOverflowError as err:
            log.debug("%s: %s", key, err)

    def add_delta_stat(self, key: str, new_delta: int) -> None:
        """Add a delta for key, creating the counter if needed."""
        try:
            self._stat(key).add_new_delta(new_delta)
        except StatOverflowError as err:
            log.debug("%s: %s", key, err)

    def set_delta_stat(self, key: str, new_delta: int) -> None:
        """Replace the delta for key, creating the counter if needed."""
        try:
            self._stat(key).set_new_delta(new_delta)
        except StatOverflowError as err:
            log.debug("%s: %s", key, err)

    def sum_all_delta_values(self) -> int:
        """Sum of the deltas of all keys."""
        return _wrap(sum(stat.delta for stat in self.stats.values()))

    def sum_all_aggr_values(self) -> int:
        """Sum of the aggregates of all keys."""
        return _wrap(sum(stat.aggr for stat in self.stats.values()))

    def reset_delta(self) -> None:
        """Zero the delta of every key."""
        for stat in self.stats.values():
            stat.reset_delta()