"""
Position-aware table reconstruction.

Instead of joining fragments into lines, this keeps each fragment's ``x`` and
rebuilds the table grid:

1. Fragments are bucketed into rows by ``y`` proximity.
2. The first row containing a header keyword opens the table; the table ends
   at the first row containing a stop marker.
3. Column positions are found by clustering fragment ``x`` values.
4. Header rows label the columns; unlabeled columns (typically the second
   word of a left-aligned cell) are folded into the labeled column to their
   left.
5. Data cells go to the nearest column.

Returns None when the page does not look like a consistent grid, so callers
can fall back to the line heuristics.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models import TextFragment
from .lines import normalize_whitespace
from .row_filter import find_stop_marker, is_header_line

logger = logging.getLogger(__name__)

# A column must be seen in at least this many rows to count
MIN_COLUMN_SUPPORT = 2


@dataclass
class Column:
    """A table column anchored at a horizontal position."""

    x: float
    label: str = ""


@dataclass
class TableLayout:
    """Aligned table: labeled columns and one list of cells per data row."""

    columns: list[Column]
    rows: list[list[str]] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Serializable form handed to the extraction model."""
        return {
            "columns": [
                {"label": c.label, "x": round(c.x, 1)} for c in self.columns
            ],
            "rows": self.rows,
        }


def row_text(row: Sequence[TextFragment]) -> str:
    return normalize_whitespace(" ".join(f.text for f in row))


def group_rows_by_proximity(
    fragments: Sequence[TextFragment], y_tolerance: float
) -> list[list[TextFragment]]:
    """
    Bucket fragments whose ``y`` lies within ``y_tolerance`` of the row's
    first fragment. Rows come back top to bottom, each sorted by ``x``.
    """
    rows: list[list[TextFragment]] = []
    anchor_y: float | None = None
    for fragment in sorted(fragments, key=lambda f: (f.y, f.x)):
        if anchor_y is None or fragment.y - anchor_y > y_tolerance:
            rows.append([])
            anchor_y = fragment.y
        rows[-1].append(fragment)
    return [sorted(row, key=lambda f: f.x) for row in rows]


def cluster_positions(
    rows: Sequence[Sequence[TextFragment]], tolerance: float
) -> list[float]:
    """
    Cluster the ``x`` of every fragment into column positions.

    Neighbouring positions closer than ``tolerance`` join one cluster.
    Clusters seen in fewer than MIN_COLUMN_SUPPORT rows are discarded.

    Returns:
        Mean ``x`` of each surviving cluster, left to right.
    """
    points = sorted(
        (fragment.x, row_num)
        for row_num, row in enumerate(rows)
        for fragment in row
    )
    clusters: list[list[tuple[float, int]]] = []
    for point in points:
        if clusters and point[0] - clusters[-1][-1][0] <= tolerance:
            clusters[-1].append(point)
        else:
            clusters.append([point])

    positions = []
    for cluster in clusters:
        if len({row_num for _, row_num in cluster}) < MIN_COLUMN_SUPPORT:
            continue
        positions.append(sum(x for x, _ in cluster) / len(cluster))
    return positions


def nearest_column(x: float, columns: Sequence[Column]) -> int:
    return min(range(len(columns)), key=lambda i: abs(columns[i].x - x))


def _assign_cells(
    row: Sequence[TextFragment], columns: Sequence[Column]
) -> list[str]:
    cells: list[list[str]] = [[] for _ in columns]
    for fragment in row:
        cells[nearest_column(fragment.x, columns)].append(fragment.text)
    return [normalize_whitespace(" ".join(parts)) for parts in cells]


def _fold_unlabeled(
    columns: list[Column], rows: list[list[str]]
) -> tuple[list[Column], list[list[str]]]:
    """Merge each unlabeled column into the nearest labeled column on its left."""
    keep: list[int] = []
    targets: list[int] = []
    for index, column in enumerate(columns):
        if column.label or not keep:
            keep.append(index)
        targets.append(len(keep) - 1)

    folded_rows = []
    for cells in rows:
        merged: list[list[str]] = [[] for _ in keep]
        for index, cell in enumerate(cells):
            if cell:
                merged[targets[index]].append(cell)
        folded_rows.append([" ".join(parts) for parts in merged])
    return [columns[i] for i in keep], folded_rows


def build_layout(
    pages: Sequence[Sequence[TextFragment]],
    y_tolerance: float = 3.0,
    x_tolerance: float = 12.0,
) -> TableLayout | None:
    """
    Rebuild the billing table grid from positioned fragments.

    Args:
        pages: Fragments per page, in document order.
        y_tolerance: Max vertical drift within one printed row.
        x_tolerance: Max horizontal gap between positions of one column.

    Returns:
        The aligned table, or None when no header row is found or fewer than
        two columns can be told apart.
    """
    all_rows: list[list[TextFragment]] = []
    for fragments in pages:
        all_rows.extend(group_rows_by_proximity(fragments, y_tolerance))

    start = next(
        (i for i, row in enumerate(all_rows) if is_header_line(row_text(row))),
        None,
    )
    if start is None:
        logger.info("Column layout: no header row found")
        return None

    header_rows: list[list[TextFragment]] = []
    data_rows: list[list[TextFragment]] = []
    for row in all_rows[start:]:
        text = row_text(row)
        if find_stop_marker(text):
            logger.info("Column layout: table ends at marker row: %s", text)
            break
        if is_header_line(text):
            # Headers repeat on every page; only the first block labels columns
            if not data_rows:
                header_rows.append(row)
            continue
        data_rows.append(row)

    positions = cluster_positions(header_rows + data_rows, x_tolerance)
    if len(positions) < 2:
        logger.info("Column layout: found %d column(s), need at least 2", len(positions))
        return None

    columns = [Column(x=x) for x in positions]
    for row in header_rows:
        for index, cell in enumerate(_assign_cells(row, columns)):
            if cell:
                columns[index].label = normalize_whitespace(
                    f"{columns[index].label} {cell}"
                )

    cells = [_assign_cells(row, columns) for row in data_rows]
    columns, cells = _fold_unlabeled(columns, cells)
    if len(columns) < 2:
        logger.info("Column layout: header labels fewer than 2 columns")
        return None
    cells = [row for row in cells if any(row)]

    logger.info(
        "Column layout: %d columns (%s), %d data rows",
        len(columns),
        ", ".join(c.label or "?" for c in columns),
        len(cells),
    )
    return TableLayout(columns=columns, rows=cells)
