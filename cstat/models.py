"""Typed records passed between the sources, the engines and the presentation layer."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class TableStats:
    read_count: int
    write_count: int
    read_latency_ms: float   # lifetime average, not per interval
    write_latency_ms: float  # lifetime average, not per interval


@dataclass(frozen=True)
class ThreadPoolStats:
    active: int
    pending: int
    completed: int
    blocked: int = 0


@dataclass(frozen=True)
class CacheStats:
    key_hit_rate: float
    row_hit_rate: float


@dataclass(frozen=True)
class HistogramSnapshot:
    """Latency buckets in ascending upper-bound order.

    Each bucket is ``(upper_bound, read_count, write_count)`` or, when the
    resource saw no writes, the read-only ``(upper_bound, read_count)``.
    Upper bounds are microseconds.
    """
    buckets: list[tuple] = field(default_factory=list)


@dataclass(frozen=True)
class CompactionTask:
    kind: str
    percent: float


@dataclass(frozen=True)
class CompactionSummary:
    pending: int
    tasks: tuple[CompactionTask, ...] = ()


@dataclass(frozen=True)
class DiskCounters:
    read_count: int
    write_count: int
    read_bytes: int
    write_bytes: int


@dataclass(frozen=True)
class NetCounters:
    bytes_recv: int
    bytes_sent: int


@dataclass(frozen=True)
class CpuBreakdown:
    user: float = 0.0
    system: float = 0.0
    iowait: float = 0.0
    idle: float = 0.0


@dataclass(frozen=True)
class SystemSnapshot:
    disk: DiskCounters | None
    net: NetCounters | None
    cpu: CpuBreakdown


@dataclass(frozen=True)
class DiskRates:
    reads_per_sec: int = 0
    writes_per_sec: int = 0
    read_kb_per_sec: int = 0
    write_kb_per_sec: int = 0


@dataclass(frozen=True)
class NetRates:
    rx_kb_per_sec: int = 0
    tx_kb_per_sec: int = 0


@dataclass(frozen=True)
class LatencyPercentiles:
    read_p99: float
    read_p95: float
    write_p99: float
    write_p95: float


@dataclass(frozen=True)
class Sample:
    """One emitted row.

    Rate fields are per interval. ``read_latency_ms`` and ``write_latency_ms``
    are the node's lifetime averages as observed at sample time.
    """
    reads_per_sec: int
    writes_per_sec: int
    read_latency_ms: float
    write_latency_ms: float
    cpu: CpuBreakdown
    disk: DiskRates
    net: NetRates
    timestamp: str | None = None
    epoch: int | None = None
    key_cache_hit_rate: float | None = None
    row_cache_hit_rate: float | None = None
    read_pending: int | None = None
    read_repairs_per_sec: int | None = None
    percentiles: LatencyPercentiles | None = None
    compaction: CompactionSummary | None = None


class EventTag(Enum):
    COMMITLOG_CREATED = "CommitlogCreated"
    FLUSH_COMPLETED = "FlushCompleted"
    MAJOR_COMPACTION_STARTED = "MajorCompactionStarted"
    TREE_SENT = "TreeSent"
    REPAIR_STARTED = "RepairStarted"
    MANUAL_REPAIR_SESSION = "ManualRepairSession"
    STREAMING_REPAIR_PROGRESS = "StreamingRepairProgress"
    STREAMING_REPAIR_FINISHED = "StreamingRepairFinished"
    # Same value as STREAMING_REPAIR_FINISHED, so this name is an alias of it.
    # The shared tag looks like a copy-paste slip in the pattern table but is
    # kept until someone confirms which tag the repair command should carry.
    REPAIR_COMMAND_FINISHED = "StreamingRepairFinished"
    COMPACTION_COMPLETED = "CompactionCompleted"


@dataclass(frozen=True)
class Event:
    timestamp: str
    tag: EventTag
    fields: tuple[str, ...] = ()
