"""Where the raw readings come from.

``MetricSource`` is the database side: table counters, thread pools, caches,
the latency histogram and compactions. ``NodetoolSource`` implements it by
running ``nodetool`` and parsing its text output. ``SystemSource`` reads the
host's disk, network and CPU counters through psutil.

Every query returns a typed record, or None when the source had nothing to
say. None from ``table_stats`` is what marks the node as unresponsive.
"""

import logging
import math
import re
import subprocess
from abc import ABC, abstractmethod

import psutil

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

logger = logging.getLogger(__name__)


class MetricSource(ABC):
    @abstractmethod
    def table_stats(self) -> TableStats | None:
        """Read/write counts and lifetime latencies for the target."""

    @abstractmethod
    def thread_pools(self) -> dict[str, ThreadPoolStats] | None:
        """Thread-pool stats keyed by pool name."""

    @abstractmethod
    def cache_stats(self) -> CacheStats | None:
        ...

    @abstractmethod
    def histogram(self) -> HistogramSnapshot | None:
        """Latency buckets for the configured table."""

    @abstractmethod
    def compactions(self) -> CompactionSummary | None:
        ...


# ---------------------------------------------------------------------------
# nodetool text parsers
# ---------------------------------------------------------------------------

_CACHE_RE = re.compile(r"^(?P<cache>Key|Row) Cache\s*:.*?(?P<rate>NaN|[\d.]+) recent hit rate", re.I)
_PENDING_RE = re.compile(r"pending tasks:\s*(\d+)", re.I)


def _to_float(value: str) -> float:
    """Parse '0.123 ms.' style values; NaN and junk read as 0.0."""
    try:
        result = float(value.split()[0])
    except (ValueError, IndexError):
        return 0.0
    return 0.0 if math.isnan(result) else result


def _to_int(value: str) -> int | None:
    try:
        return int(value.split()[0])
    except (ValueError, IndexError):
        return None


def parse_cfstats(text: str, keyspace: str, table: str | None = None) -> TableStats | None:
    """Pull the counters for *keyspace* (or *keyspace*.*table*) out of cfstats output.

    Understands both the ``Column Family:`` / ``Read Count`` and the
    ``Table:`` / ``Local read count`` spellings.
    """
    scope_keyspace = None
    scope_table = None
    values: dict[str, str] = {}

    for raw in text.splitlines():
        key, sep, value = raw.strip().partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()

        if key == "keyspace":
            scope_keyspace, scope_table = value, None
            continue
        if key in ("column family", "table"):
            scope_table = value
            continue

        if scope_keyspace != keyspace or scope_table != table:
            continue
        if key.startswith("local "):
            key = key[len("local "):]
        values.setdefault(key, value)

    read_count = _to_int(values.get("read count", ""))
    write_count = _to_int(values.get("write count", ""))
    if read_count is None or write_count is None:
        return None

    return TableStats(
        read_count=read_count,
        write_count=write_count,
        read_latency_ms=_to_float(values.get("read latency", "")),
        write_latency_ms=_to_float(values.get("write latency", "")),
    )


def parse_tpstats(text: str) -> dict[str, ThreadPoolStats]:
    """Parse the pool table; the dropped-message section is ignored."""
    pools: dict[str, ThreadPoolStats] = {}
    for raw in text.splitlines():
        tokens = raw.split()
        if len(tokens) < 4:
            continue
        numbers = [_to_int(t) for t in tokens[1:]]
        if any(n is None for n in numbers[:3]):
            continue
        pools[tokens[0]] = ThreadPoolStats(
            active=numbers[0],
            pending=numbers[1],
            completed=numbers[2],
            blocked=numbers[3] if len(numbers) > 3 and numbers[3] is not None else 0,
        )
    return pools


def parse_info(text: str) -> CacheStats | None:
    rates: dict[str, float] = {}
    for raw in text.splitlines():
        m = _CACHE_RE.match(raw.strip())
        if m:
            rates[m.group("cache").lower()] = _to_float(m.group("rate"))
    if not rates:
        return None
    return CacheStats(key_hit_rate=rates.get("key", 0.0), row_hit_rate=rates.get("row", 0.0))


def parse_histograms(text: str) -> HistogramSnapshot:
    """Parse the bucketed cfhistograms table.

    Columns are located by header name. Without a ``Write Latency`` column
    the buckets come out in the read-only ``(offset, reads)`` shape.
    """
    lines = text.splitlines()
    header_idx = next((i for i, l in enumerate(lines) if l.strip().startswith("Offset")), None)
    if header_idx is None:
        return HistogramSnapshot()

    columns = re.split(r"\s{2,}", lines[header_idx].strip())
    if "Read Latency" not in columns:
        return HistogramSnapshot()
    read_col = columns.index("Read Latency")
    write_col = columns.index("Write Latency") if "Write Latency" in columns else None

    buckets: list[tuple] = []
    for raw in lines[header_idx + 1:]:
        tokens = raw.split()
        if len(tokens) < len(columns):
            continue
        offset = _to_int(tokens[0])
        reads = _to_int(tokens[read_col])
        if offset is None or reads is None:
            continue
        if write_col is None:
            buckets.append((offset, reads))
        else:
            buckets.append((offset, reads, _to_int(tokens[write_col]) or 0))
    return HistogramSnapshot(buckets=buckets)


def parse_compactionstats(text: str) -> CompactionSummary:
    pending = 0
    tasks: list[CompactionTask] = []
    type_col = 0
    for raw in text.splitlines():
        stripped = raw.strip()
        m = _PENDING_RE.match(stripped)
        if m:
            pending = int(m.group(1))
            continue
        if "compaction type" in stripped:
            type_col = 1 if stripped.split()[0] == "id" else 0
            continue
        tokens = stripped.split()
        if len(tokens) > type_col and tokens[-1].endswith("%"):
            tasks.append(CompactionTask(kind=tokens[type_col], percent=_to_float(tokens[-1].rstrip("%"))))
    return CompactionSummary(pending=pending, tasks=tuple(tasks))


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class NodetoolSource(MetricSource):
    """Queries a node through the ``nodetool`` binary.

    Calls block until nodetool exits; there is no timeout, so a hung node
    stalls the sampling loop.
    """

    def __init__(self, keyspace: str, table: str | None = None, nodetool: str = "nodetool",
                 host: str | None = None, port: int | None = None):
        self._keyspace = keyspace
        self._table = table
        self._base_cmd = [nodetool]
        if host:
            self._base_cmd += ["-h", host]
        if port:
            self._base_cmd += ["-p", str(port)]

    def _run(self, *args: str) -> str | None:
        cmd = self._base_cmd + list(args)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            logger.warning("nodetool %s failed (exit %d): %s", args[0], e.returncode, (e.stderr or "").strip())
            return None
        except OSError as e:
            logger.warning("Could not run %s: %s", self._base_cmd[0], e)
            return None
        return result.stdout

    def table_stats(self) -> TableStats | None:
        out = self._run("cfstats", self._keyspace)
        if not out:
            return None
        return parse_cfstats(out, self._keyspace, self._table)

    def thread_pools(self) -> dict[str, ThreadPoolStats] | None:
        out = self._run("tpstats")
        return parse_tpstats(out) if out else None

    def cache_stats(self) -> CacheStats | None:
        out = self._run("info")
        return parse_info(out) if out else None

    def histogram(self) -> HistogramSnapshot | None:
        if not self._table:
            return None
        out = self._run("cfhistograms", self._keyspace, self._table)
        return parse_histograms(out) if out else None

    def compactions(self) -> CompactionSummary | None:
        out = self._run("compactionstats")
        return parse_compactionstats(out) if out else None


class SystemSource:
    """Host disk, network and CPU readings via psutil."""

    def __init__(self, disk: str, interface: str):
        self._disk = disk
        self._interface = interface
        self._warned: set[str] = set()

    def _warn_once(self, kind: str, name: str) -> None:
        if kind not in self._warned:
            self._warned.add(kind)
            logger.warning("No %s named %r, reporting zero rates", kind, name)

    def disk_counters(self) -> DiskCounters | None:
        c = (psutil.disk_io_counters(perdisk=True) or {}).get(self._disk)
        if c is None:
            self._warn_once("disk", self._disk)
            return None
        return DiskCounters(
            read_count=c.read_count,
            write_count=c.write_count,
            read_bytes=c.read_bytes,
            write_bytes=c.write_bytes,
        )

    def net_counters(self) -> NetCounters | None:
        c = (psutil.net_io_counters(pernic=True) or {}).get(self._interface)
        if c is None:
            self._warn_once("network interface", self._interface)
            return None
        return NetCounters(bytes_recv=c.bytes_recv, bytes_sent=c.bytes_sent)

    def cpu(self) -> CpuBreakdown:
        """CPU split since the previous call (the first call primes psutil)."""
        t = psutil.cpu_times_percent(interval=None)
        return CpuBreakdown(
            user=t.user,
            system=t.system,
            iowait=getattr(t, "iowait", 0.0),
            idle=t.idle,
        )

    def snapshot(self) -> SystemSnapshot:
        return SystemSnapshot(disk=self.disk_counters(), net=self.net_counters(), cpu=self.cpu())
