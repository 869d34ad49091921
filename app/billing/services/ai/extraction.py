"""
Row normalization with the OpenAI chat completions API.

Sends candidate table lines (or the column-aligned table) together with the
merged billing schema and worked examples, and returns validated rows.
"""

import json
import logging
from typing import Any

from ...models import UnifiedRow
from ..layout import TableLayout
from .exceptions import AIServiceError
from .validation import parse_rows_response, validate_rows

logger = logging.getLogger(__name__)


# =============================================================================
# Prompts
# =============================================================================

EXTRACTION_SYSTEM_PROMPT = """You are a precise information extraction engine for billing tables.
You will receive text from a PDF, which may include headers and rows.
The text may be fragmented, incomplete, or lack clear structure.
Group it into logical table rows based on context and map them to the schema given by the user.
Return ONLY valid JSON of the form: {"rows": [ ... ]} with NO extra text.
Ensure the output is valid JSON, even if no rows are extracted."""

SCHEMA_DESCRIPTION = """MERGED SCHEMA (every value is a string, or null if missing):

- Name
- MemberID (from MRN#, MRN, or MBR ID #)
- T1023AuthId
- T1023Range
- T1023BillDate
- H0044AuthId
- H0044Range
- H0044BillDate
- Paid"""

EXTRACTION_RULES = """IMPORTANT RULES:
1) Group lines into rows based on context (e.g., a name followed by an ID or date).
2) Pair RANGE/BILL columns correctly for T1023 and H0044.
3) 'MemberID' comes from MRN#, MRN, or MBR ID # (alphanumeric IDs).
4) Do not invent data. Use null for missing fields. Only copy text that appears in the input.
5) Keep date/range formats as found (e.g., '04/01-07/01' or '04/01/23').
6) Use context clues (e.g., date patterns 'MM/DD' or 'MM/DD/YYYY', alphanumeric IDs) to align data.
7) If no valid rows can be formed, return {"rows": []}.
8) Ensure the output is valid JSON with properly escaped strings."""

LAYOUT_RULES = """POSITIONAL CONTEXT:
The table is given as columns (header label and horizontal position) and rows
of cells aligned to those columns. Use the column labels to map cells.
When a row has authorization/range pairs that the labels do not tell apart,
the first pair is T1023 and the second pair is H0044; a lone pair is H0044."""

FEW_SHOT_EXAMPLES: list[tuple[list[str], dict[str, Any]]] = [
    (
        [
            "NAME MRN T1023 H0044",
            "1 Alo, Benjamin 9898293 146080416 4/1-6/30",
        ],
        {
            "rows": [
                {
                    "Name": "Alo, Benjamin",
                    "MemberID": "9898293",
                    "T1023AuthId": "146080416",
                    "T1023Range": "4/1-6/30",
                    "T1023BillDate": None,
                    "H0044AuthId": None,
                    "H0044Range": None,
                    "H0044BillDate": None,
                    "Paid": None,
                }
            ]
        },
    ),
    (
        [
            "NAME MBR ID # T1023 RANGE BILL H0044 RANGE BILL PAID",
            "2 Reyes, Maria",
            "A4471920",
            "AUTH88120 04/01-07/01 04/15 AUTH99310 04/01-07/01 05/01 YES",
        ],
        {
            "rows": [
                {
                    "Name": "Reyes, Maria",
                    "MemberID": "A4471920",
                    "T1023AuthId": "AUTH88120",
                    "T1023Range": "04/01-07/01",
                    "T1023BillDate": "04/15",
                    "H0044AuthId": "AUTH99310",
                    "H0044Range": "04/01-07/01",
                    "H0044BillDate": "05/01",
                    "Paid": "YES",
                }
            ]
        },
    ),
]


def _format_examples() -> str:
    parts = []
    for number, (lines, output) in enumerate(FEW_SHOT_EXAMPLES, 1):
        parts.append(
            f"Example {number} input LINES:\n{json.dumps(lines)}\n"
            f"Example {number} output:\n{json.dumps(output)}"
        )
    return "\n\n".join(parts)


def build_extraction_prompt(lines: list[str]) -> str:
    """Build the user prompt for the line-based strategy."""
    return f"""We have billing tables from different insurers with varying headers.
The input lines may be fragmented (e.g., names, IDs, or dates on separate lines).
Group lines into logical rows and unify each row into this {SCHEMA_DESCRIPTION}

{EXTRACTION_RULES}

EXAMPLES:
{_format_examples()}

LINES:
{json.dumps(lines)}
"""


def build_layout_prompt(layout: TableLayout) -> str:
    """Build the user prompt for the column-aligned strategy."""
    return f"""We have billing tables from different insurers with varying headers.
Unify each table row into this {SCHEMA_DESCRIPTION}

{EXTRACTION_RULES}

{LAYOUT_RULES}

EXAMPLES (line form; the same mapping applies to aligned cells):
{_format_examples()}

TABLE:
{json.dumps(layout.to_payload())}
"""


# =============================================================================
# Main Normalization Function
# =============================================================================


async def normalize_rows(
    prompt: str,
    client: Any,  # AsyncOpenAI client
    model: str = "gpt-4o-mini",
    temperature: float = 0.0,
    max_tokens: int = 4000,
    job_id: str | None = None,
) -> list[UnifiedRow]:
    """
    Ask the model for rows and validate the reply.

    Args:
        prompt: User prompt from build_extraction_prompt or build_layout_prompt.
        client: AsyncOpenAI client instance.
        model: Model name to use.
        temperature: Sampling temperature.
        max_tokens: Completion token limit.
        job_id: Used only to tag log messages.

    Returns:
        Validated, non-empty rows in reply order.

    Raises:
        AIServiceError: If the request fails or the reply is not a JSON
            object with a ``rows`` array.
    """
    tag = job_id or "-"
    try:
        completion = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as e:
        logger.error("Job %s - OpenAI request failed: %s", tag, e)
        raise AIServiceError(str(e)) from e

    content = completion.choices[0].message.content
    logger.debug("Job %s - OpenAI response: %s", tag, content)

    raw_rows = parse_rows_response(content)
    validation = validate_rows(raw_rows)
    for warning in validation.warnings:
        logger.warning("Job %s - %s", tag, warning)

    logger.info(
        "Job %s - Model returned %d rows: %d kept, %d invalid, %d empty",
        tag,
        len(raw_rows),
        len(validation.rows),
        validation.invalid_count,
        validation.empty_count,
    )
    return validation.rows
