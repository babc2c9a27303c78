"""The sampling loop.

One cycle: wait out the interval, take one disk/network/CPU reading, query the
node, and either emit a row or, if the node returned nothing, an unresponsive
marker. The orchestrator owns the only long-lived state: the previous counter
snapshot and the log watermark.

An unresponsive cycle leaves both untouched. The next good cycle therefore
measures against the snapshot from before the gap, and its rates are divided
by the time actually elapsed since that snapshot rather than by the nominal
interval.
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from cstat.config import Config
from cstat.delta import CounterSnapshot, rates
from cstat.log_events import LogWatermark, extract_events
from cstat.models import (
    DiskRates,
    Event,
    HistogramSnapshot,
    NetRates,
    Sample,
    SystemSnapshot,
    TableStats,
    ThreadPoolStats,
)
from cstat.percentile import latency_percentiles
from cstat.sources import MetricSource, SystemSource

logger = logging.getLogger(__name__)

READ_STAGE = "ReadStage"
READ_REPAIR_STAGE = "ReadRepairStage"


class State(Enum):
    PRIMING = "priming"
    SAMPLING = "sampling"
    RESPONSIVE = "responsive"
    UNRESPONSIVE = "unresponsive"
    EMIT = "emit"
    IDLE = "idle"
    TERMINAL = "terminal"


class Sink(Protocol):
    def write_sample(self, sample: Sample) -> None: ...
    def write_unresponsive(self, timestamp: str | None) -> None: ...
    def write_events(self, events: list[Event]) -> None: ...


class SamplingOrchestrator:
    def __init__(
        self,
        config: Config,
        source: MetricSource,
        system: SystemSource,
        sink: Sink,
        shutdown_event: threading.Event | None = None,
        wait: Callable[[float], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self._config = config
        self._source = source
        self._system = system
        self._sink = sink
        self._shutdown = shutdown_event or threading.Event()
        self._wait = wait or self._shutdown.wait
        self._clock = clock
        self._wall_clock = wall_clock

        self.state = State.PRIMING
        self.previous: CounterSnapshot | None = None
        self.watermark = LogWatermark()
        self.cycles = 0
        self.emitted = 0

    # -- state -------------------------------------------------------------

    def _needs_pools(self) -> bool:
        return self._config.cache or self._config.read_repair

    def _snapshot(self, stats: TableStats, system: SystemSnapshot,
                  pools: dict[str, ThreadPoolStats] | None, taken_at: float) -> CounterSnapshot:
        counters = {"reads": stats.read_count, "writes": stats.write_count}
        if system.disk is not None:
            counters.update(
                disk_reads=system.disk.read_count,
                disk_writes=system.disk.write_count,
                disk_read_bytes=system.disk.read_bytes,
                disk_write_bytes=system.disk.write_bytes,
            )
        if system.net is not None:
            counters.update(net_rx_bytes=system.net.bytes_recv, net_tx_bytes=system.net.bytes_sent)
        if pools and READ_REPAIR_STAGE in pools:
            counters["read_repairs"] = pools[READ_REPAIR_STAGE].completed
        return CounterSnapshot(counters=counters, taken_at=taken_at)

    def prime(self) -> None:
        """Seed the baseline and the log watermark without emitting anything."""
        self.state = State.PRIMING
        system = self._system.snapshot()
        taken_at = self._clock()  # host counters and node counters share this instant
        stats = self._source.table_stats()
        if stats is None:
            logger.warning("Node unresponsive while priming, baseline deferred")
        else:
            pools = self._source.thread_pools() if self._needs_pools() else None
            self.previous = self._snapshot(stats, system, pools, taken_at)

        if self._config.log_file:
            self.watermark = LogWatermark.at_end_of(self._config.log_file)
            logger.info("Watching %s from line %d", self._config.log_file, self.watermark.lines)
        self.state = State.IDLE

    # -- cycle -------------------------------------------------------------

    def _timestamp(self) -> str | None:
        if not self._config.timestamp:
            return None
        return datetime.fromtimestamp(self._wall_clock()).strftime("%H:%M:%S")

    def run_once(self) -> Sample | None:
        """Run one cycle. Returns the emitted sample, or None."""
        self.state = State.SAMPLING
        if self._wait(self._config.interval):
            self.state = State.TERMINAL
            return None

        system = self._system.snapshot()
        taken_at = self._clock()
        stats = self._source.table_stats()

        if stats is None:
            self.state = State.UNRESPONSIVE
            logger.warning("Node returned no stats for %s, will retry", self._config.keyspace)
            self.state = State.EMIT
            self._sink.write_unresponsive(self._timestamp())
            self.state = State.IDLE
            return None

        self.state = State.RESPONSIVE
        pools = self._source.thread_pools() if self._needs_pools() else None
        current = self._snapshot(stats, system, pools, taken_at)

        if self.previous is None:
            logger.info("Baseline established, first row follows next interval")
            self.previous = current
            self.state = State.IDLE
            return None

        self.state = State.EMIT
        sample = self._build_sample(stats, system, pools, rates(current, self.previous))

        events: list[Event] = []
        seen = self.watermark.lines
        if self._config.log_file:
            events, seen = extract_events(self._config.log_file, self.watermark.lines)

        self._sink.write_sample(sample)
        if events:
            self._sink.write_events(events)

        self.previous = current
        self.watermark.advance(seen)
        self.emitted += 1
        self.state = State.IDLE
        return sample

    def _build_sample(self, stats: TableStats, system: SystemSnapshot,
                      pools: dict[str, ThreadPoolStats] | None, deltas: dict[str, int]) -> Sample:
        cfg = self._config
        extras = {}

        if cfg.cache:
            caches = self._source.cache_stats()
            if caches is not None:
                extras["key_cache_hit_rate"] = caches.key_hit_rate
                extras["row_cache_hit_rate"] = caches.row_hit_rate
            if pools and READ_STAGE in pools:
                extras["read_pending"] = pools[READ_STAGE].pending

        if cfg.read_repair:
            extras["read_repairs_per_sec"] = deltas.get("read_repairs", 0)

        if cfg.percentiles:
            extras["percentiles"] = latency_percentiles(self._source.histogram() or HistogramSnapshot())

        if cfg.compaction:
            extras["compaction"] = self._source.compactions()

        if cfg.epoch:
            extras["epoch"] = int(self._wall_clock())

        return Sample(
            reads_per_sec=deltas.get("reads", 0),
            writes_per_sec=deltas.get("writes", 0),
            read_latency_ms=stats.read_latency_ms,
            write_latency_ms=stats.write_latency_ms,
            cpu=system.cpu,
            disk=DiskRates(
                reads_per_sec=deltas.get("disk_reads", 0),
                writes_per_sec=deltas.get("disk_writes", 0),
                read_kb_per_sec=deltas.get("disk_read_bytes", 0) // 1024,
                write_kb_per_sec=deltas.get("disk_write_bytes", 0) // 1024,
            ),
            net=NetRates(
                rx_kb_per_sec=deltas.get("net_rx_bytes", 0) // 1024,
                tx_kb_per_sec=deltas.get("net_tx_bytes", 0) // 1024,
            ),
            timestamp=self._timestamp(),
            **extras,
        )

    # -- loop --------------------------------------------------------------

    def _finished(self) -> bool:
        if self._shutdown.is_set() or self.state is State.TERMINAL:
            return True
        return self._config.count is not None and self.cycles >= self._config.count

    def run(self) -> int:
        """Prime, then cycle until the count is used up or shutdown is requested.

        Every cycle counts against ``count``, including unresponsive ones.
        Returns the number of samples emitted.
        """
        self.prime()
        while not self._finished():
            self.run_once()
            self.cycles += 1
        self.state = State.TERMINAL
        logger.info("Sampling stopped after %d cycles, %d samples", self.cycles, self.emitted)
        return self.emitted
