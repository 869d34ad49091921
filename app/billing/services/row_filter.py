"""
Heuristic filter that keeps the billing table out of a page of lines.

The filter is a single pass over the lines driven by ``classify``, a pure
function of the current line and the filter state. Rows whose columns were
printed as separate physical lines are stitched back together in an
accumulator until the next row index appears.

Rules, in priority order:
1. A stop marker phrase, or a line that is only a month name (a section
   header), ends the table; nothing after it is kept.
2. Header lines (NAME, MRN, MBR as whole words; T1023, H0044) are always
   kept and placed before the data rows.
3. A line led by a row index starts a new row.
4. While a row is open every other line is appended to it.
5. With no row open, a line with a comma, a date or date range, or a run of
   5+ capitals/digits starts a row.
6. Anything else is dropped.
"""

import enum
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)


MONTH_NAMES = (
    "JANUARY",
    "FEBRUARY",
    "MARCH",
    "APRIL",
    "MAY",
    "JUNE",
    "JULY",
    "AUGUST",
    "SEPTEMBER",
    "OCTOBER",
    "NOVEMBER",
    "DECEMBER",
)

STOP_MARKERS = (
    "AP'S OVERDUE",
    "OVERDUE",
    "AP'S DUE",
    "DUE CM",
    "ALL INTAKE",
    "NEEDS H0044",
)

# Phrases match anywhere in the upper-cased line, on word boundaries.
_STOP_RE = re.compile(
    r"(?<![A-Z0-9])(" + "|".join(re.escape(m) for m in STOP_MARKERS) + r")(?![A-Z0-9])"
)
# A month only ends the table as a section header: the whole line is the
# month, optionally followed by a year. "1 Lee, June" or "may be late" do not.
_SECTION_RE = re.compile(
    r"^\s*(" + "|".join(MONTH_NAMES) + r")(?:\s+\d{2,4})?\s*$"
)
_HEADER_RE = re.compile(r"\bNAME\b|T1023|H0044|\bMRN|\bMBR\b")
_ROW_INDEX_RE = re.compile(r"^\d+(\s|$)")
_DATE_RANGE_RE = re.compile(
    r"\d{1,2}/\d{1,2}(?:/\d{2,4})?\s*-\s*\d{1,2}/\d{1,2}(?:/\d{2,4})?"
)
_DATE_RE = re.compile(r"\d{2}/\d{2}")
_ID_RE = re.compile(r"[A-Z0-9]{5,}")


class Action(str, enum.Enum):
    """What the filter does with a line."""

    STOP = "stop"
    HEADER = "header"
    NEW_ROW = "new_row"
    APPEND = "append"
    START_ROW = "start_row"
    SKIP = "skip"


@dataclass(frozen=True)
class FilterState:
    """Lines of the row currently being accumulated."""

    open_row: tuple[str, ...] = ()

    @property
    def is_open(self) -> bool:
        return bool(self.open_row)

    def flush(self) -> str | None:
        """The accumulated row as one line, or None when no row is open."""
        if not self.open_row:
            return None
        return " ".join(self.open_row)


@dataclass(frozen=True)
class Classification:
    """
    Result of classifying one line.

    Attributes:
        action: The rule that fired.
        next_state: State to use for the following line.
        flushed: A completed row emitted by this step, if any.
    """

    action: Action
    next_state: FilterState
    flushed: str | None = None


def find_stop_marker(line: str) -> str | None:
    """Return the stop marker contained in ``line``, if any."""
    upper = line.upper()
    match = _STOP_RE.search(upper) or _SECTION_RE.match(upper)
    return match.group(1) if match else None


def is_header_line(line: str) -> bool:
    return bool(_HEADER_RE.search(line.upper()))


def is_row_index(line: str) -> bool:
    """True for lines led by a row number, e.g. ``"12"`` or ``"3 Doe, J"``."""
    return bool(_ROW_INDEX_RE.match(line))


def looks_like_row_start(line: str) -> bool:
    return (
        "," in line
        or bool(_DATE_RANGE_RE.search(line))
        or bool(_DATE_RE.search(line))
        or bool(_ID_RE.search(line))
    )


def classify(line: str, state: FilterState) -> Classification:
    """
    Decide what to do with ``line`` given the current filter state.

    Pure function: the caller owns the state and feeds ``next_state`` back
    in for the following line.
    """
    if find_stop_marker(line):
        return Classification(Action.STOP, FilterState(), state.flush())

    if is_header_line(line):
        return Classification(Action.HEADER, state)

    if is_row_index(line):
        return Classification(Action.NEW_ROW, FilterState((line,)), state.flush())

    if state.is_open:
        return Classification(Action.APPEND, FilterState(state.open_row + (line,)))

    if looks_like_row_start(line):
        return Classification(Action.START_ROW, FilterState((line,)))

    return Classification(Action.SKIP, state)


def filter_rows(lines: Sequence[str], job_id: str | None = None) -> list[str]:
    """
    Keep the header and data rows of the billing table.

    Args:
        lines: Document lines in reading order.
        job_id: Used only to tag log messages.

    Returns:
        Header lines followed by data rows. When nothing qualifies, the lines
        before the stop marker are returned instead, or the whole document
        when the stop marker was the first line.
    """
    tag = job_id or "-"
    headers: list[str] = []
    rows: list[str] = []
    state = FilterState()
    consumed = len(lines)

    for position, line in enumerate(lines):
        result = classify(line, state)
        if result.flushed is not None:
            rows.append(result.flushed)

        if result.action is Action.STOP:
            logger.info("Job %s - Stopped filtering at marker: %s", tag, line)
            consumed = position
            state = result.next_state
            break
        if result.action is Action.HEADER:
            headers.append(line)

        state = result.next_state

    remainder = state.flush()
    if remainder is not None:
        rows.append(remainder)

    filtered = headers + rows
    if not filtered:
        fallback = list(lines[:consumed]) or list(lines)
        logger.info(
            "Job %s - No lines passed filtering, using %d unfiltered lines",
            tag,
            len(fallback),
        )
        return fallback

    logger.info(
        "Job %s - Filtered %d lines down to %d (%d header, %d rows)",
        tag,
        len(lines),
        len(filtered),
        len(headers),
        len(rows),
    )
    return filtered
