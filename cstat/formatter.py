"""Row presentation: fixed-width columns, periodic headers and event lines."""

import sys
from typing import Callable

from cstat.config import Config
from cstat.models import CompactionSummary, Event, Sample

HEADER_EVERY = 10
UNRESPONSIVE_MARKER = "*** node unresponsive ***"

Column = tuple[str, int, Callable[[Sample], str]]


def _num(value, fmt: str = "d") -> str:
    return "-" if value is None else format(value, fmt)


def _compaction(summary: CompactionSummary | None) -> str:
    if summary is None:
        return "-"
    tasks = ",".join(f"{t.kind}:{t.percent:.1f}%" for t in summary.tasks)
    return f"{summary.pending} {tasks}".rstrip()


def _columns(config: Config) -> list[Column]:
    cols: list[Column] = []
    if config.timestamp:
        cols.append(("time", 8, lambda s: s.timestamp or "-"))
    if config.epoch:
        cols.append(("epoch", 10, lambda s: _num(s.epoch)))

    cols += [
        ("reads/s", 8, lambda s: _num(s.reads_per_sec)),
        ("writes/s", 8, lambda s: _num(s.writes_per_sec)),
        ("rlat(ms)", 9, lambda s: _num(s.read_latency_ms, ".3f")),
        ("wlat(ms)", 9, lambda s: _num(s.write_latency_ms, ".3f")),
    ]
    if config.cache:
        cols += [
            ("kc_hit", 6, lambda s: _num(s.key_cache_hit_rate, ".3f")),
            ("rc_hit", 6, lambda s: _num(s.row_cache_hit_rate, ".3f")),
            ("rd_pend", 7, lambda s: _num(s.read_pending)),
        ]
    cols += [
        ("usr", 5, lambda s: _num(s.cpu.user, ".1f")),
        ("sys", 5, lambda s: _num(s.cpu.system, ".1f")),
        ("wa", 5, lambda s: _num(s.cpu.iowait, ".1f")),
        ("idl", 5, lambda s: _num(s.cpu.idle, ".1f")),
        ("dr/s", 6, lambda s: _num(s.disk.reads_per_sec)),
        ("dw/s", 6, lambda s: _num(s.disk.writes_per_sec)),
        ("drKB/s", 8, lambda s: _num(s.disk.read_kb_per_sec)),
        ("dwKB/s", 8, lambda s: _num(s.disk.write_kb_per_sec)),
        ("rxKB/s", 8, lambda s: _num(s.net.rx_kb_per_sec)),
        ("txKB/s", 8, lambda s: _num(s.net.tx_kb_per_sec)),
    ]
    if config.read_repair:
        cols.append(("rr/s", 6, lambda s: _num(s.read_repairs_per_sec)))
    if config.percentiles:
        cols += [
            ("r99(ms)", 8, lambda s: _num(s.percentiles and s.percentiles.read_p99, ".3f")),
            ("r95(ms)", 8, lambda s: _num(s.percentiles and s.percentiles.read_p95, ".3f")),
            ("w99(ms)", 8, lambda s: _num(s.percentiles and s.percentiles.write_p99, ".3f")),
            ("w95(ms)", 8, lambda s: _num(s.percentiles and s.percentiles.write_p95, ".3f")),
        ]
    if config.compaction:
        cols.append(("compaction", 0, lambda s: _compaction(s.compaction)))
    return cols


def header(config: Config) -> str:
    return " ".join(title.rjust(width) for title, width, _ in _columns(config)).rstrip()


def format_row(sample: Sample, config: Config) -> str:
    """Render one sample under the header produced for the same config."""
    return " ".join(get(sample).rjust(width) for _, width, get in _columns(config)).rstrip()


def format_unresponsive(timestamp: str | None) -> str:
    return f"{timestamp} {UNRESPONSIVE_MARKER}" if timestamp else UNRESPONSIVE_MARKER


def format_event(event: Event) -> str:
    return " ".join(part for part in (event.timestamp, event.tag.value, *event.fields) if part)


class OutputSink:
    """Writes rows to a stream and events to a separate file or between rows.

    The header is printed before the first row and again every
    ``HEADER_EVERY`` rows unless ``no_header`` is set.
    """

    def __init__(self, config: Config, stream=None):
        self._config = config
        self._stream = stream or sys.stdout
        self._rows = 0
        self._event_file = None
        if config.event_output:
            self._event_file = open(config.event_output, "a", encoding="utf-8")

    def _write(self, out, line: str) -> None:
        out.write(line + "\n")
        out.flush()

    def _next_row(self, line: str) -> None:
        if not self._config.no_header and self._rows % HEADER_EVERY == 0:
            self._write(self._stream, header(self._config))
        self._write(self._stream, line)
        self._rows += 1

    def write_sample(self, sample: Sample) -> None:
        self._next_row(format_row(sample, self._config))

    def write_unresponsive(self, timestamp: str | None) -> None:
        self._next_row(format_unresponsive(timestamp))

    def write_events(self, events: list[Event]) -> None:
        out = self._event_file or self._stream
        for event in events:
            self._write(out, format_event(event))

    def close(self) -> None:
        if self._event_file:
            self._event_file.close()
            self._event_file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
