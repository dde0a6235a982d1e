"""
Question bank validator: keeps only answers to currently active questions.

Older app builds keep submitting question codes the bank has since retired.
Those answers are dropped with a log line; the request never fails because
of them. A None answer means "not answered" and is dropped too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from trustdiner.services.reference_data import ReferenceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedAnswer:
    """An answer pinned to the version of the question active at write time."""

    code: str
    version: int
    value: bool


def filter_answers(
    raw_answers: Mapping[str, Optional[bool]],
    active_questions: Mapping[str, int],
) -> list[ValidatedAnswer]:
    """
    Pure filter: keep (code, version, value) for every non-null answer whose
    code is in active_questions (code → active version).
    """
    validated: list[ValidatedAnswer] = []
    for code, value in raw_answers.items():
        if value is None:
            continue
        if " " in code:
            logger.warning("Question code %r contains spaces; clients must send snake_case codes", code)
        version = active_questions.get(code)
        if version is None:
            logger.info("Skipping unknown or inactive question code: %s", code)
            continue
        validated.append(ValidatedAnswer(code=code, version=version, value=bool(value)))
    return validated


class QuestionBankValidator:
    """Validates raw yes/no answers against the active question bank."""

    def __init__(self, reference: ReferenceRepository):
        self._reference = reference

    async def validate_answers(
        self, raw_answers: Mapping[str, Optional[bool]]
    ) -> list[ValidatedAnswer]:
        """Fetch the active questions and filter raw_answers against them."""
        if not raw_answers:
            return []
        active = await self._reference.active_questions()
        validated = filter_answers(raw_answers, active)
        logger.debug(
            "Validated %d of %d answers against %d active questions",
            len(validated), len(raw_answers), len(active),
        )
        return validated
