"""Read-only SQL validation.

A textual allow-list, not a parser: it accepts a single SELECT that contains
no data-modifying keyword. It stops destructive statements and statement
batching; it is not a complete defence against SQL injection.
"""

import re

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"--[^\n\r]*")
_STARTS_WITH_SELECT = re.compile(r"^select\b", re.IGNORECASE)
_HAS_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)

FORBIDDEN_KEYWORDS = (
    "UPDATE",
    "DELETE",
    "INSERT",
    "DROP",
    "ALTER",
    "CREATE",
    "TRUNCATE",
    "GRANT",
    "REVOKE",
)
_FORBIDDEN = re.compile(
    r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b",
    re.IGNORECASE,
)

REJECTION_MESSAGE = "Only single-statement SELECT queries are allowed."


def strip_comments(query: str) -> str:
    """Remove block and line comments and surrounding whitespace."""
    text = _BLOCK_COMMENT.sub("", query)
    text = _LINE_COMMENT.sub("", text)
    return text.strip()


def validate_select(query: object) -> tuple[bool, str | None]:
    """Check that ``query`` is a single read-only SELECT.

    Returns: (is_valid, reason)
    """
    if not isinstance(query, str):
        return False, "Query must be a string"

    text = strip_comments(query)
    if not text:
        return False, "Empty SQL query"

    if not _STARTS_WITH_SELECT.search(text):
        return False, "Query must start with SELECT"

    if not _HAS_FROM.search(text):
        return False, "Query must contain FROM"

    forbidden = _FORBIDDEN.search(text)
    if forbidden:
        return False, f"Forbidden keyword: {forbidden.group(1).upper()}"

    # At most one terminator, and only as the final character
    terminators = text.count(";")
    if terminators > 1:
        return False, "Multiple SQL statements not allowed"
    if terminators == 1 and not text.endswith(";"):
        return False, "Statement terminator must be the final character"

    return True, None


def is_safe_select(query: object) -> bool:
    return validate_select(query)[0]
