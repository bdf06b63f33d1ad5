"""Response Formatter - Renders a ResponseRecord as one text block.

    Status: 200 OK

    {
      "a": 1
    }

Records without a status render as "Error: {message}".
"""

from __future__ import annotations

import json

from api_explorer.composer import strict_json_loads
from api_explorer.models import ResponseRecord


JSON_INDENT = 2


def format_body(text: str) -> str:
    """Pretty-print text that parses as JSON; return anything else unchanged.

    Non-ASCII characters are kept as-is rather than escaped.
    """
    try:
        parsed = strict_json_loads(text)
    except ValueError:
        return text
    return json.dumps(parsed, indent=JSON_INDENT, ensure_ascii=False)


def format_status_line(status_code: int, status_text: str) -> str:
    return f"Status: {status_code} {status_text}"


def format_error(message: str) -> str:
    return f"Error: {message}"


def format_record(record: ResponseRecord) -> str:
    """Render a record for display."""
    if record.status_code is None:
        return format_error(record.body_text)
    status_line = format_status_line(record.status_code, record.status_text or "")
    return f"{status_line}\n\n{format_body(record.body_text)}"
