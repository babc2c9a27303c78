"""Turns successive cumulative counter readings into per-second rates.

Counters read from the node (operation counts, completed thread-pool tasks,
disk and network byte counters) only grow while the process lives. A reading
smaller than its predecessor means the process restarted; that cycle reports
a rate of zero and the new reading becomes the baseline for the next one.

Latencies are not handled here. The node reports them as lifetime averages
and they are passed through unchanged, so a row mixes per-interval rates with
lifetime latencies.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterSnapshot:
    counters: dict[str, int] = field(default_factory=dict)
    taken_at: float = 0.0  # monotonic seconds


def rate(current: int, previous: int, interval_seconds: float) -> int:
    """Per-second rate between two readings, truncated to an integer."""
    if interval_seconds <= 0:
        raise ValueError(f"interval must be positive, got {interval_seconds}")
    if current < previous:
        logger.debug("Counter reset: %d -> %d, reporting 0", previous, current)
        return 0
    return int((current - previous) // interval_seconds)


def rates(current: CounterSnapshot, previous: CounterSnapshot) -> dict[str, int]:
    """Rate for every counter present in both snapshots."""
    interval = current.taken_at - previous.taken_at
    return {
        name: rate(value, previous.counters[name], interval)
        for name, value in current.counters.items()
        if name in previous.counters
    }
