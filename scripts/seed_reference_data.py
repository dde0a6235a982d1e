"""
seed_reference_data.py: insert the canonical allergens and the default
question bank. Rows that already exist are left untouched, so the script is
safe to re-run.

Usage:
    python scripts/seed_reference_data.py
    python scripts/seed_reference_data.py --question-version 2
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trustdiner.database import AsyncSessionLocal, engine
from trustdiner.models import Allergen, Base, Question
from trustdiner.services.code_translator import to_client
from trustdiner.utils.allergy_data import (
    ALLERGEN_DISPLAY_NAMES,
    CANONICAL_ALLERGENS,
    DEFAULT_QUESTIONS,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("seed_reference_data")


async def seed_allergens(session: AsyncSession) -> int:
    """Insert missing allergens in display order; return how many were added."""
    result = await session.execute(select(Allergen.code))
    existing = set(result.scalars())
    added = 0
    for position, code in enumerate(CANONICAL_ALLERGENS, start=1):
        if code in existing:
            continue
        session.add(Allergen(
            code=code,
            name=ALLERGEN_DISPLAY_NAMES.get(to_client(code), code.title()),
            sort_order=position,
            is_active=True,
        ))
        added += 1
    return added


async def seed_questions(session: AsyncSession, version: int) -> int:
    """Insert missing (code, version) questions as active; return how many were added."""
    result = await session.execute(
        select(Question.question_code).where(Question.version == version)
    )
    existing = set(result.scalars())
    added = 0
    for code, prompt in DEFAULT_QUESTIONS.items():
        if code in existing:
            continue
        session.add(Question(question_code=code, version=version, prompt=prompt, is_active=True))
        added += 1
    return added


async def main(question_version: int) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        async with session.begin():
            allergens = await seed_allergens(session)
            questions = await seed_questions(session, question_version)

    logger.info("Seeded %d allergens and %d questions (version %d)", allergens, questions, question_version)
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed allergens and the default question bank")
    parser.add_argument("--question-version", type=int, default=1, help="Version to seed questions at")
    args = parser.parse_args()
    asyncio.run(main(args.question_version))
