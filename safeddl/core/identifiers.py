"""
SQL identifier validation.

DDL identifiers cannot be bound as statement parameters, so every table,
index and column name is checked against a strict grammar before it is
interpolated into generated SQL. The 64 character ceiling mirrors MySQL's
identifier limit.
"""

import re
from typing import Iterable, List

from safeddl.core.errors import IdentifierValidationError

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]{0,63}")

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


def validate_identifier(name: str) -> str:
    """
    Return `name` unchanged if it is a safe SQL identifier.

    Raises:
        IdentifierValidationError: for empty strings, whitespace, punctuation,
            backticks, a leading digit, or more than 64 characters.
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.fullmatch(name):
        raise IdentifierValidationError(
            f'Invalid SQL identifier: "{name}". Must match [A-Za-z_][A-Za-z0-9_]{{0,63}}'
        )
    return name


def validate_identifiers(names: Iterable[str]) -> List[str]:
    """Validate every name; an empty list is itself invalid."""
    names = list(names or [])
    if not names:
        raise IdentifierValidationError("At least one identifier required")
    return [validate_identifier(name) for name in names]


def validate_execution_id(execution_id: str) -> str:
    """Accept only canonical 8-4-4-4-12 hex UUID strings."""
    if not isinstance(execution_id, str) or not _UUID_PATTERN.fullmatch(execution_id):
        raise IdentifierValidationError(f"Invalid execution ID format: {execution_id}")
    return execution_id


def quote_identifier(name: str) -> str:
    """Backtick-quote an identifier after validating it."""
    return f"`{validate_identifier(name)}`"
