"""
Classification helpers for errors raised by PostgREST / supabase-py.

supabase-py raises `postgrest.exceptions.APIError` from `.execute()`; older code paths
return a response with `.error` set. Both carry the Postgres SQLSTATE in `code`.
"""
from __future__ import annotations

UNIQUE_VIOLATION = "23505"
UNDEFINED_TABLE = "42P01"


def _error_text(error: object) -> str:
    parts = [
        str(getattr(error, "code", "") or ""),
        str(getattr(error, "message", "") or ""),
        str(getattr(error, "details", "") or ""),
        str(error or ""),
    ]
    return " ".join(p for p in parts if p).casefold()


def is_unique_violation(error: object) -> bool:
    """
    True when the error is a Postgres unique-constraint violation.
    """

    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return True
    text = _error_text(error)
    return UNIQUE_VIOLATION in text or "duplicate key value violates unique constraint" in text


def is_missing_relation_error(error: object) -> bool:
    text = _error_text(error)
    return (
        UNDEFINED_TABLE.casefold() in text
        or "pgrst205" in text
        or ("relation" in text and "does not exist" in text)
        or ("could not find" in text and "relation" in text)
    )
