"""
Code translator: maps allergen codes between the client vocabulary and the
storage vocabulary held by the allergens table.

Applied on the write path (client → canonical before persistence) and on the
read path (canonical → client before anything is returned), including the
chain-level allergen averages.
"""

from __future__ import annotations

import logging
from typing import Mapping, TypeVar

from trustdiner.utils.allergy_data import (
    ALLERGEN_ORDER,
    CANONICAL_TO_CLIENT,
    CLIENT_TO_CANONICAL,
    LEGACY_CLIENT_SYNONYMS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Client code → position in the UI; unknown codes sort after all known ones
_ORDER_INDEX = {code: i for i, code in enumerate(ALLERGEN_ORDER)}


def _normalise(code: str) -> str:
    return code.strip().lower()


def to_canonical(client_code: str) -> str:
    """Map a client (or legacy client) allergen code to its storage code; unmapped codes pass through."""
    code = _normalise(client_code)
    code = LEGACY_CLIENT_SYNONYMS.get(code, code)
    return CLIENT_TO_CANONICAL.get(code, code)


def to_client(canonical_code: str) -> str:
    """Map a storage allergen code to the code the frontend expects; unmapped codes pass through."""
    code = _normalise(canonical_code)
    return CANONICAL_TO_CLIENT.get(code, code)


def sort_client_codes(codes: list[str]) -> list[str]:
    """Sort client codes in display order; unknown codes go last, in their original order."""
    return sorted(codes, key=lambda c: _ORDER_INDEX.get(c, len(_ORDER_INDEX)))


def scores_to_canonical(scores: Mapping[str, T]) -> dict[str, T]:
    """
    Translate every key of a client score map to its storage code.
    Two client keys that collapse onto one storage code (e.g. 'tree_nuts' and
    'nut') keep the value of the later key.
    """
    result: dict[str, T] = {}
    for client_code, value in scores.items():
        canonical = to_canonical(client_code)
        if canonical in result:
            logger.warning(
                "Allergen %r collapses onto %r which is already set; keeping the later value",
                client_code, canonical,
            )
        result[canonical] = value
    return result


def scores_to_client(scores: Mapping[str, T]) -> dict[str, T]:
    """Translate every key of a storage score map to client codes, in display order."""
    translated = {to_client(code): value for code, value in scores.items()}
    return {code: translated[code] for code in sort_client_codes(list(translated))}
