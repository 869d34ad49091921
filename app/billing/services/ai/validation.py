"""
Validation of rows returned by the extraction model.

The model is asked for the UnifiedRow schema but is not guaranteed to honor
it, so every reply is checked on the way in:
- the reply must be one JSON object with a ``rows`` array (hard failure);
- each row is validated on its own; a bad row becomes an empty row;
- empty rows are dropped from the result.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from ...models import UnifiedRow
from .exceptions import AIServiceError

logger = logging.getLogger(__name__)


class RowValidationResult:
    """Result of validating a batch of rows."""

    def __init__(self):
        self.rows: list[UnifiedRow] = []
        self.warnings: list[str] = []
        self.invalid_count = 0
        self.empty_count = 0


def parse_rows_response(content: str | None) -> list[Any]:
    """
    Parse the raw model reply and return its ``rows`` array.

    Raises:
        AIServiceError: If the reply is empty, not JSON, not an object, or
            has no ``rows`` array.
    """
    if not content:
        raise AIServiceError("Empty response from OpenAI")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse extraction response: %s", content[:500])
        raise AIServiceError(f"Invalid JSON response: {e}") from e

    if not isinstance(data, dict):
        raise AIServiceError(
            f"Invalid response shape: expected a JSON object, got {type(data).__name__}"
        )

    rows = data.get("rows")
    if not isinstance(rows, list):
        raise AIServiceError("Invalid response shape: missing 'rows' array")
    return rows


def validate_rows(raw_rows: list[Any]) -> RowValidationResult:
    """
    Validate rows field by field and drop the ones left empty.

    Args:
        raw_rows: The ``rows`` array from the model reply.

    Returns:
        RowValidationResult with the surviving rows in reply order.
    """
    result = RowValidationResult()

    for index, raw in enumerate(raw_rows):
        try:
            row = UnifiedRow.model_validate(raw)
        except ValidationError as e:
            result.invalid_count += 1
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            message = f"Row {index} failed validation ({', '.join(fields) or 'row'}); blanked"
            logger.debug("%s: %s", message, e)
            result.warnings.append(message)
            row = UnifiedRow()

        if row.is_empty():
            result.empty_count += 1
            continue
        result.rows.append(row)

    return result
