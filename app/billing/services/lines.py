"""
Reconstruct printed lines from positioned text fragments.

A page is a bag of fragments; fragments that share a vertical position form
one visual row, read left to right.
"""

import logging
import re
from collections.abc import Iterable, Sequence

from ..models import TextFragment

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to a single space and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def group_fragments_by_row(
    fragments: Iterable[TextFragment],
) -> list[list[TextFragment]]:
    """
    Bucket fragments by exact ``y`` and sort each bucket by ``x``.

    Two fragments belong to the same row only when their ``y`` values are
    equal. Buckets are returned in order of first appearance, which follows
    the decoder's reading order.
    """
    rows: dict[float, list[TextFragment]] = {}
    for fragment in fragments:
        rows.setdefault(fragment.y, []).append(fragment)
    return [sorted(row, key=lambda f: f.x) for row in rows.values()]


def page_to_lines(fragments: Iterable[TextFragment]) -> list[str]:
    """Convert the fragments of a single page to non-empty lines."""
    lines = []
    for row in group_fragments_by_row(fragments):
        line = normalize_whitespace(" ".join(f.text for f in row))
        if line:
            lines.append(line)
    return lines


def extract_lines(pages: Sequence[Sequence[TextFragment]]) -> list[str]:
    """
    Convert a decoded document into an ordered list of lines.

    Args:
        pages: Fragments per page, in document order.

    Returns:
        Lines of every page, pages concatenated in order.
    """
    all_lines: list[str] = []
    for page_num, fragments in enumerate(pages, 1):
        page_lines = page_to_lines(fragments)
        logger.debug("Page %d: %d fragments -> %d lines", page_num, len(fragments), len(page_lines))
        all_lines.extend(page_lines)
    return all_lines
