"""Latency percentiles from a bucketed histogram.

The node hands out one interval's worth of completed operations per bucket.
A percentile is the upper bound of the first bucket whose running count
passes the target share of the population. Bounds are microseconds, results
are milliseconds.
"""

from cstat.models import HistogramSnapshot, LatencyPercentiles

READ = "read"
WRITE = "write"


def _count(bucket: tuple, kind: str) -> int:
    """Pick the count for *kind* out of a bucket.

    ``(bound, read, write)`` carries both columns. ``(bound, read)`` is the
    read-only shape and has no writes.
    """
    if kind == READ:
        return bucket[1]
    if kind == WRITE:
        return bucket[2] if len(bucket) > 2 else 0
    raise ValueError(f"unknown operation kind: {kind!r}")


def percentile(histogram: HistogramSnapshot, target: int, kind: str) -> float:
    """Upper bound (ms) of the bucket holding the *target* percentile.

    Returns 0.0 when no operations were observed or no bucket crosses the
    threshold.
    """
    total = sum(_count(b, kind) for b in histogram.buckets)
    if total == 0:
        return 0.0

    threshold = total * target // 100
    running = 0
    for bucket in histogram.buckets:
        running += _count(bucket, kind)
        if running > threshold:
            return bucket[0] / 1000
    return 0.0


def latency_percentiles(histogram: HistogramSnapshot) -> LatencyPercentiles:
    return LatencyPercentiles(
        read_p99=percentile(histogram, 99, READ),
        read_p95=percentile(histogram, 95, READ),
        write_p99=percentile(histogram, 99, WRITE),
        write_p95=percentile(histogram, 95, WRITE),
    )
