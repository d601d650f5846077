"""
Shape validation for StructuredQuery input.

Checks presence, types, enum membership and per-element array contents of
an arbitrary decoded JSON value. Every violation is reported, not just the
first one.
"""

from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from geoquery.errors import Issue, ShapeValidationError
from geoquery.query.models import StructuredQuery

_VALUE_ERROR_PREFIX = "Value error, "


def issues_from_validation_error(error: ValidationError) -> List[Issue]:
    """
    Flatten a pydantic ValidationError into path/message issues.

    Args:
        error: ValidationError raised by StructuredQuery.model_validate

    Returns:
        One Issue per reported error, in pydantic's order
    """
    issues = []
    for detail in error.errors():
        path = ".".join(str(part) for part in detail.get("loc", ())) or "(root)"
        message = detail.get("msg", "invalid value")
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        issues.append(Issue(path=path, message=message))
    return issues


def safe_validate_query(raw: Any) -> Tuple[Optional[StructuredQuery], List[Issue]]:
    """
    Validate without raising.

    Returns:
        (query, []) on success, (None, issues) on failure
    """
    try:
        return StructuredQuery.model_validate(raw), []
    except ValidationError as e:
        return None, issues_from_validation_error(e)


def validate_query(raw: Any) -> StructuredQuery:
    """
    Validate arbitrary input as a StructuredQuery.

    Raises:
        ShapeValidationError: With every violation found
    """
    query, issues = safe_validate_query(raw)
    if query is None:
        raise ShapeValidationError(issues)
    return query


def extract_query_payload(body: Any) -> Tuple[Any, str]:
    """
    Accept either a bare StructuredQuery or {"query": StructuredQuery}.

    Returns:
        (payload, request_format) where request_format is "wrapped" or "direct"
    """
    if isinstance(body, dict) and isinstance(body.get("query"), dict):
        return body["query"], "wrapped"
    return body, "direct"
