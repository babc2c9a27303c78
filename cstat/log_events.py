"""Incremental classification of the node's append-only log.

Each cycle scans only the lines appended since the previous cycle, matches
them against an ordered template table and turns hits into events. Lines are
located by whitespace-delimited token positions (1-based, negative counts
from the end of the line) in the node log layout::

    INFO [FlushWriter:1] 2012-05-01 12:00:00,123 Memtable.java (line 305) flush completed ...
    $1   $2              $3         $4           $5           $6    $7   $8 ...

Only complete lines (terminated by a newline) are counted, so a line still
being written is picked up once it is finished.
"""

import logging
import os
import re
from dataclasses import dataclass, field

from cstat.models import Event, EventTag

logger = logging.getLogger(__name__)

TIMESTAMP_TOKEN = 4


@dataclass(frozen=True)
class EventTemplate:
    trigger: str
    tag: EventTag
    field_tokens: tuple[int, ...] = ()
    _pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_pattern", re.compile(re.escape(self.trigger), re.IGNORECASE))

    def matches(self, line: str) -> bool:
        return self._pattern.search(line) is not None


# Order is priority: the first matching template wins.
TEMPLATES: tuple[EventTemplate, ...] = (
    EventTemplate("new commitlog created", EventTag.COMMITLOG_CREATED),
    EventTemplate("flush completed", EventTag.FLUSH_COMPLETED),
    EventTemplate("major compaction started", EventTag.MAJOR_COMPACTION_STARTED),
    EventTemplate("anti-entropy tree sent", EventTag.TREE_SENT, (-3, -2, -1)),
    EventTemplate("repair started", EventTag.REPAIR_STARTED, (-2,)),
    EventTemplate("manual repair session", EventTag.MANUAL_REPAIR_SESSION, (-1,)),
    EventTemplate("streaming repair in progress", EventTag.STREAMING_REPAIR_PROGRESS, (-6, -3, -1)),
    EventTemplate("streaming repair finished", EventTag.STREAMING_REPAIR_FINISHED),
    EventTemplate("repair command issued", EventTag.REPAIR_COMMAND_FINISHED),
    EventTemplate("compaction output written", EventTag.COMPACTION_COMPLETED),
)


def _token(tokens: list[str], position: int) -> str:
    if position > 0 and position <= len(tokens):
        return tokens[position - 1]
    if position < 0 and -position <= len(tokens):
        return tokens[position]
    return ""


def classify_line(line: str, templates: tuple[EventTemplate, ...] = TEMPLATES) -> Event | None:
    """Return the event for *line*, or None when no template matches."""
    for template in templates:
        if template.matches(line):
            tokens = line.split()
            return Event(
                timestamp=_token(tokens, TIMESTAMP_TOKEN),
                tag=template.tag,
                fields=tuple(_token(tokens, p) for p in template.field_tokens),
            )
    return None


def _read_complete_lines(log_path: str, skip: int | None = None) -> tuple[int, list[str]]:
    """Count complete lines in the file and return those after the first *skip*.

    With *skip* left as None only the count is taken.
    """
    count = 0
    fresh: list[str] = []
    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            if not line.endswith("\n"):
                break
            count += 1
            if skip is not None and count > skip:
                fresh.append(line)
    return count, fresh


def count_lines(log_path: str) -> int:
    """Number of complete lines in *log_path*; a missing file has none."""
    try:
        count, _ = _read_complete_lines(log_path)
    except FileNotFoundError:
        logger.debug("Log file %s not found, counting 0 lines", log_path)
        return 0
    except OSError as e:
        logger.warning("Could not read log file %s: %s", log_path, e)
        return 0
    return count


def extract_events(log_path: str, watermark: int) -> tuple[list[Event], int]:
    """Classify the lines appended after *watermark*.

    Returns the events and the new watermark. A log that did not grow, or
    that shrank, yields no events and leaves the watermark unchanged.
    """
    try:
        count, fresh = _read_complete_lines(log_path, skip=watermark)
    except FileNotFoundError:
        logger.debug("Log file %s not found, skipping event scan", log_path)
        return [], watermark
    except OSError as e:
        logger.warning("Could not read log file %s, skipping event scan: %s", log_path, e)
        return [], watermark

    if count <= watermark:
        return [], watermark

    events = [e for e in (classify_line(line) for line in fresh) if e is not None]
    logger.debug("Scanned %d new lines of %s, %d events", len(fresh), log_path, len(events))
    return events, count


class LogWatermark:
    """Count of log lines already consumed. Never moves backwards."""

    def __init__(self, lines: int = 0):
        self.lines = lines

    @classmethod
    def at_end_of(cls, log_path: str) -> "LogWatermark":
        """Start past whatever the log already holds so old lines are not replayed."""
        return cls(count_lines(log_path))

    def advance(self, lines: int) -> None:
        if lines > self.lines:
            self.lines = lines

    def __repr__(self) -> str:
        return f"LogWatermark(lines={self.lines})"


def log_exists(log_path: str) -> bool:
    return os.path.isfile(log_path)
