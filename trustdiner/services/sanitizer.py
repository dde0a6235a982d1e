"""
Payload sanitizer: removes fields that would silently destroy stored data.

Optimistic client state routinely resubmits fields the user never touched as
`{}` or `""`. Such a field means "no change", never "clear this". The
sanitizer drops it so the engine never sees it.

Works on the mapping of fields the caller actually sent
(`model.model_dump(exclude_unset=True)`), so an unset field is simply absent.
"""

from __future__ import annotations

from typing import Any, Mapping

# Explicit None on these clears the stored value
NULLABLE_HEADER_FIELDS = frozenset({"overall_rating", "general_comment", "visit_date"})

HEADER_FIELDS = NULLABLE_HEADER_FIELDS | {"status", "moderated_by", "moderated_at"}

CATEGORY_FIELDS = ("allergen_scores", "yes_no_answers")

UPDATABLE_FIELDS = HEADER_FIELDS | frozenset(CATEGORY_FIELDS)


def is_blank(value: Any) -> bool:
    """True for an empty mapping or an empty / whitespace-only string."""
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Mapping):
        return len(value) == 0
    return False


def sanitize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of payload without blank fields.

    None is kept only for nullable header fields, where it is an intentional
    clear; on category maps and non-nullable fields it is dropped.
    """
    cleaned: dict[str, Any] = {}
    for field, value in payload.items():
        if value is None:
            if field in NULLABLE_HEADER_FIELDS:
                cleaned[field] = None
            continue
        if is_blank(value):
            continue
        cleaned[field] = value
    return cleaned


def stripped_fields(payload: Mapping[str, Any]) -> list[str]:
    """Names of the fields sanitize() would remove from payload."""
    cleaned = sanitize(payload)
    return [field for field in payload if field not in cleaned]


def has_meaningful_content(payload: Mapping[str, Any]) -> bool:
    """True if sanitization leaves at least one updatable field."""
    return any(field in UPDATABLE_FIELDS for field in sanitize(payload))
