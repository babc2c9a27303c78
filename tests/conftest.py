import pytest

from cstat.config import Config
from cstat.models import (
    CacheStats,
    CompactionSummary,
    CompactionTask,
    CpuBreakdown,
    DiskCounters,
    HistogramSnapshot,
    NetCounters,
    SystemSnapshot,
    TableStats,
    ThreadPoolStats,
)
from cstat.sources import MetricSource


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def wait(self, seconds: float) -> bool:
        self.now += seconds
        return False


class FakeSource(MetricSource):
    """Replays a scripted list of table stats; None entries are unresponsive reads."""

    def __init__(self, stats: list, pools=None, histogram=None, caches=None, compactions=None):
        self._stats = list(stats)
        self.pools = pools
        self.hist = histogram
        self.caches = caches
        self.compaction_summary = compactions
        self.table_calls = 0

    def table_stats(self):
        self.table_calls += 1
        return self._stats.pop(0) if self._stats else None

    def thread_pools(self):
        return self.pools

    def cache_stats(self):
        return self.caches

    def histogram(self):
        return self.hist

    def compactions(self):
        return self.compaction_summary


class FakeSystem:
    def __init__(self, step_bytes: int = 10240, step_ops: int = 20):
        self._reads = 0
        self._bytes = 0
        self._step_bytes = step_bytes
        self._step_ops = step_ops
        self.calls = 0

    def snapshot(self) -> SystemSnapshot:
        self.calls += 1
        snap = SystemSnapshot(
            disk=DiskCounters(self._reads, self._reads, self._bytes, self._bytes),
            net=NetCounters(bytes_recv=self._bytes, bytes_sent=self._bytes),
            cpu=CpuBreakdown(user=10.0, system=5.0, iowait=1.0, idle=84.0),
        )
        self._reads += self._step_ops
        self._bytes += self._step_bytes
        return snap


class RecordingSink:
    def __init__(self):
        self.samples = []
        self.unresponsive = []
        self.events = []

    def write_sample(self, sample):
        self.samples.append(sample)

    def write_unresponsive(self, timestamp):
        self.unresponsive.append(timestamp)

    def write_events(self, events):
        self.events.extend(events)


def stats(reads: int, writes: int, rlat: float = 0.5, wlat: float = 0.1) -> TableStats:
    return TableStats(read_count=reads, write_count=writes, read_latency_ms=rlat, write_latency_ms=wlat)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def system():
    return FakeSystem()


@pytest.fixture
def config():
    return Config(keyspace="ks", interval=5)


@pytest.fixture
def full_config(tmp_path):
    return Config(
        keyspace="ks",
        table="users",
        interval=5,
        cache=True,
        read_repair=True,
        percentiles=True,
        compaction=True,
        log_file=str(tmp_path / "system.log"),
    )


@pytest.fixture
def rich_source_parts():
    return {
        "pools": {
            "ReadStage": ThreadPoolStats(active=2, pending=7, completed=1000),
            "ReadRepairStage": ThreadPoolStats(active=0, pending=0, completed=50),
        },
        "histogram": HistogramSnapshot(buckets=[(10, 1, 0), (20, 2, 5), (30, 7, 5)]),
        "caches": CacheStats(key_hit_rate=0.95, row_hit_rate=0.5),
        "compactions": CompactionSummary(pending=2, tasks=(CompactionTask("Compaction", 12.5),)),
    }
