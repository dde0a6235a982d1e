from __future__ import annotations

import asyncio
import logging
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from trustdiner.exceptions import (
    AlreadyReviewedError,
    EstablishmentNotFoundError,
    ForbiddenError,
    ReviewNotFoundError,
    TransactionFailedError,
    ValidationFailedError,
)
from trustdiner.models import Allergen, Review, ReviewAllergenScore, ReviewAnswer
from trustdiner.schemas.review import ReviewCreate, ReviewUpdate, ReviewView
from trustdiner.services.review_store import ReviewStore


def _create(review_engine, **fields):
    fields.setdefault("user_id", 7)
    fields.setdefault("establishment_id", 42)
    return asyncio.run(review_engine.create_review(ReviewCreate(**fields)))


def _count(session_factory, model, *conditions):
    async def count():
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*conditions))
            return result.scalar()

    return asyncio.run(count())


def _stored_codes(session_factory, review_id):
    async def codes():
        async with session_factory() as session:
            result = await session.execute(
                select(Allergen.code)
                .join(ReviewAllergenScore, ReviewAllergenScore.allergen_id == Allergen.id)
                .where(ReviewAllergenScore.review_id == review_id)
            )
            return sorted(result.scalars())

    return asyncio.run(codes())


def _fail(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("disk I/O error"))


async def _async_fail(*args, **kwargs):
    _fail()


# ── Create ───────────────────────────────────────────────────────────────────


def test_create_translates_scores_and_drops_unknown_questions(review_engine):
    review = _create(
        review_engine,
        allergen_scores={"tree_nuts": 4},
        yes_no_answers={"allergen_menu": True, "bogus_code": False},
    )
    assert review.user_id == 7
    assert review.establishment_id == 42
    assert review.allergen_scores == {"tree_nuts": 4}
    assert review.yes_no_answers == {"allergen_menu": True}
    assert review.status == "pending"
    assert review.visit_date is not None
    assert review.establishment.name == "Corner Bistro"
    assert review.user.display_name == "Ada"


def test_alias_codes_are_stored_canonically_and_read_back_as_client_codes(review_engine, session_factory):
    review = _create(review_engine, allergen_scores={"tree_nuts": 4, "sulfites": 2, "milk": 1})
    assert review.allergen_scores == {"milk": 1, "tree_nuts": 4, "sulfites": 2}
    assert _stored_codes(session_factory, review.id) == ["milk", "nuts", "sulphites"]


def test_legacy_client_codes_are_accepted(review_engine):
    review = _create(review_engine, allergen_scores={"dairy": 3, "nut": 5})
    assert review.allergen_scores == {"milk": 3, "tree_nuts": 5}


def test_unknown_allergen_codes_are_skipped(review_engine, caplog):
    with caplog.at_level(logging.INFO, logger="trustdiner.services.review_engine"):
        review = _create(review_engine, allergen_scores={"unicorn": 3, "gluten": 2})
    assert review.allergen_scores == {"gluten": 2}
    assert "unicorn" in caplog.text


def test_inactive_question_answers_are_dropped(review_engine):
    review = _create(review_engine, yes_no_answers={"retired_question": True, "kitchen_adjust": False})
    assert review.yes_no_answers == {"kitchen_adjust": False}


def test_legacy_general_comments_field_is_accepted(review_engine):
    review = asyncio.run(review_engine.create_review(
        ReviewCreate.model_validate({"userId": 7, "establishmentId": 42, "generalComments": "Great"})
    ))
    assert review.general_comment == "Great"


def test_chain_pseudo_id_resolves_to_first_establishment(review_engine):
    review = _create(review_engine, establishment_id="chain-1")
    assert review.establishment_id == 10
    assert review.chain.name == "Pizza Planet"


def test_unknown_chain_pseudo_id_is_not_found(review_engine):
    with pytest.raises(EstablishmentNotFoundError):
        _create(review_engine, establishment_id="chain-99")


def test_place_id_is_used_when_establishment_id_is_absent(review_engine):
    review = _create(review_engine, establishment_id=None, place_id="place-42")
    assert review.establishment_id == 42


def test_uuid_and_numeric_string_references_resolve(review_engine):
    assert _create(review_engine, establishment_id="uuid-11").establishment_id == 11
    assert _create(review_engine, establishment_id="10").establishment_id == 10


def test_unknown_establishment_is_not_found(review_engine):
    with pytest.raises(EstablishmentNotFoundError):
        _create(review_engine, establishment_id=999)


def test_missing_establishment_reference_is_rejected(review_engine):
    with pytest.raises(ValidationFailedError):
        _create(review_engine, establishment_id=None)


def test_missing_user_is_rejected(review_engine):
    with pytest.raises(ValidationFailedError):
        asyncio.run(review_engine.create_review(ReviewCreate(establishment_id=42)))


def test_second_create_for_same_establishment_is_already_reviewed(review_engine, session_factory):
    _create(review_engine)
    attempts = 4
    for _ in range(attempts - 1):
        with pytest.raises(AlreadyReviewedError):
            _create(review_engine, overall_rating=1)
    assert _count(session_factory, Review, Review.user_id == 7, Review.establishment_id == 42) == 1


def test_unique_constraint_catches_create_that_skips_the_existence_check(
    review_engine, session_factory, monkeypatch
):
    _create(review_engine, allergen_scores={"milk": 2})

    async def no_existing_review(self, user_id, establishment_id):
        return None

    monkeypatch.setattr(ReviewStore, "find_review_id", no_existing_review)
    with pytest.raises(AlreadyReviewedError):
        _create(review_engine, allergen_scores={"milk": 5})

    assert _count(session_factory, Review) == 1
    assert _count(session_factory, ReviewAllergenScore) == 1


def test_failed_create_leaves_no_partial_review(review_engine, session_factory, monkeypatch):
    monkeypatch.setattr(ReviewStore, "add_answers", _async_fail)
    with pytest.raises(TransactionFailedError) as excinfo:
        _create(review_engine, allergen_scores={"milk": 2}, yes_no_answers={"allergen_menu": True})

    assert excinfo.value.retryable
    assert _count(session_factory, Review) == 0
    assert _count(session_factory, ReviewAllergenScore) == 0


# ── Update ───────────────────────────────────────────────────────────────────


def test_blank_comment_does_not_overwrite_stored_comment(review_engine, caplog):
    review = _create(review_engine, general_comment="Careful staff")
    with caplog.at_level(logging.WARNING, logger="trustdiner.services.review_engine"):
        updated = asyncio.run(review_engine.update_review(
            review.id, ReviewUpdate(general_comment=""), owner_id=7
        ))
    assert updated.general_comment == "Careful staff"
    assert "Field clearing blocked" in caplog.text


def test_empty_update_opens_no_transaction(review_engine, uow, monkeypatch):
    review = _create(
        review_engine,
        general_comment="Fine",
        allergen_scores={"milk": 3},
        yes_no_answers={"allergen_menu": True},
    )

    def no_transaction():
        raise AssertionError("an empty update must not open a transaction")

    monkeypatch.setattr(uow, "transaction", no_transaction)
    updated = asyncio.run(review_engine.update_review(
        review.id,
        ReviewUpdate(general_comment="", allergen_scores={}, yes_no_answers={}),
        owner_id=7,
    ))
    assert updated == review


def test_unchanged_header_values_are_a_no_op(review_engine, uow, monkeypatch):
    review = _create(review_engine, overall_rating=4, general_comment="Same")

    def no_transaction():
        raise AssertionError("an unchanged update must not open a transaction")

    monkeypatch.setattr(uow, "transaction", no_transaction)
    updated = asyncio.run(review_engine.update_review(
        review.id, ReviewUpdate(overall_rating=4, general_comment="Same"), owner_id=7
    ))
    assert updated.updated_at == review.updated_at


def test_updating_scores_leaves_answers_untouched(review_engine):
    review = _create(
        review_engine,
        allergen_scores={"milk": 3, "gluten": 4},
        yes_no_answers={"allergen_menu": True, "staff_confident": False},
    )
    updated = asyncio.run(review_engine.update_review(
        review.id, ReviewUpdate(allergen_scores={"tree_nuts": 1}), owner_id=7
    ))
    assert updated.allergen_scores == {"tree_nuts": 1}
    assert updated.yes_no_answers == {"allergen_menu": True, "staff_confident": False}


def test_updating_answers_leaves_scores_untouched(review_engine):
    review = _create(
        review_engine,
        allergen_scores={"milk": 3},
        yes_no_answers={"allergen_menu": True},
    )
    updated = asyncio.run(review_engine.update_review(
        review.id, ReviewUpdate(yes_no_answers={"kitchen_adjust": True}), owner_id=7
    ))
    assert updated.yes_no_answers == {"kitchen_adjust": True}
    assert updated.allergen_scores == {"milk": 3}


def test_header_update_writes_only_changed_fields(review_engine):
    review = _create(review_engine, overall_rating=2, general_comment="Meh")
    updated = asyncio.run(review_engine.update_review(
        review.id, {"overall_rating": 5, "general_comment": "Meh"}, owner_id=7
    ))
    assert updated.overall_rating == 5
    assert updated.general_comment == "Meh"
    assert updated.updated_at >= review.updated_at


def test_explicit_null_clears_comment(review_engine):
    review = _create(review_engine, general_comment="Remove me")
    updated = asyncio.run(review_engine.update_review(
        review.id, ReviewUpdate(general_comment=None), owner_id=7
    ))
    assert updated.general_comment is None


def test_update_by_another_user_is_forbidden(review_engine, reader):
    review = _create(review_engine, overall_rating=3)
    with pytest.raises(ForbiddenError):
        asyncio.run(review_engine.update_review(review.id, ReviewUpdate(overall_rating=1), owner_id=8))
    assert asyncio.run(reader.get_review(review.id)).overall_rating == 3


def test_update_of_missing_review_is_not_found(review_engine):
    with pytest.raises(ReviewNotFoundError):
        asyncio.run(review_engine.update_review(999, ReviewUpdate(overall_rating=1), owner_id=7))


def test_failed_category_replacement_rolls_back(review_engine, reader, monkeypatch):
    review = _create(review_engine, allergen_scores={"milk": 3})
    monkeypatch.setattr(ReviewStore, "add_allergen_scores", _async_fail)
    with pytest.raises(TransactionFailedError):
        asyncio.run(review_engine.update_review(
            review.id, ReviewUpdate(allergen_scores={"gluten": 1}, overall_rating=5), owner_id=7
        ))
    monkeypatch.undo()

    stored = asyncio.run(reader.get_review(review.id))
    assert stored.allergen_scores == {"milk": 3}
    assert stored.overall_rating is None


# ── Delete ───────────────────────────────────────────────────────────────────


def test_delete_removes_review_and_children(review_engine, reader, session_factory):
    review = _create(review_engine, allergen_scores={"milk": 3}, yes_no_answers={"allergen_menu": True})
    deleted = asyncio.run(review_engine.delete_review(review.id, owner_id=7))

    assert deleted.id == review.id
    assert asyncio.run(reader.get_review(review.id)) is None
    assert _count(session_factory, ReviewAllergenScore) == 0
    assert _count(session_factory, ReviewAnswer) == 0


def test_delete_by_another_user_is_forbidden(review_engine, reader):
    review = _create(review_engine)
    with pytest.raises(ForbiddenError):
        asyncio.run(review_engine.delete_review(review.id, owner_id=8))
    assert asyncio.run(reader.get_review(review.id)) is not None


def test_delete_of_missing_review_is_not_found(review_engine):
    with pytest.raises(ReviewNotFoundError):
        asyncio.run(review_engine.delete_review(999, owner_id=7))


def test_user_can_review_again_after_deleting(review_engine):
    review = _create(review_engine)
    asyncio.run(review_engine.delete_review(review.id, owner_id=7))
    again = _create(review_engine, overall_rating=5)
    assert again.overall_rating == 5
    assert again.status == "pending"


# ── Moderate ─────────────────────────────────────────────────────────────────


def test_moderation_records_status_and_moderator(review_engine):
    review = _create(review_engine, general_comment="Keep me")
    moderated = asyncio.run(review_engine.moderate_review(review.id, "approved", moderator_id=99))
    assert moderated.status == "approved"
    assert moderated.moderated_by == 99
    assert moderated.moderated_at is not None
    assert moderated.general_comment == "Keep me"


def test_moderation_rejects_unknown_status(review_engine):
    review = _create(review_engine)
    with pytest.raises(ValidationFailedError):
        asyncio.run(review_engine.moderate_review(review.id, "pending", moderator_id=99))


def test_moderation_of_missing_review_is_not_found(review_engine):
    with pytest.raises(ReviewNotFoundError):
        asyncio.run(review_engine.moderate_review(999, "rejected", moderator_id=99))


# ── Concurrency ──────────────────────────────────────────────────────────────


def test_concurrent_creates_leave_exactly_one_review(review_engine, session_factory):
    attempts = 6

    async def create_concurrently():
        return await asyncio.gather(
            *(
                review_engine.create_review(ReviewCreate(user_id=9, establishment_id=42, overall_rating=n % 5 + 1))
                for n in range(attempts)
            ),
            return_exceptions=True,
        )

    results = asyncio.run(create_concurrently())
    created = [r for r in results if isinstance(r, ReviewView)]
    rejected = [r for r in results if isinstance(r, AlreadyReviewedError)]

    assert len(created) == 1
    assert len(rejected) == attempts - 1
    assert _count(session_factory, Review, Review.user_id == 9, Review.establishment_id == 42) == 1


# ── Database failures ────────────────────────────────────────────────────────


def test_reference_lookup_failure_during_create_is_retryable(review_engine, reference, session_factory, monkeypatch):
    monkeypatch.setattr(reference, "active_questions", _async_fail)
    with pytest.raises(TransactionFailedError) as excinfo:
        _create(review_engine, yes_no_answers={"allergen_menu": True})

    assert excinfo.value.retryable
    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert _count(session_factory, Review) == 0


def test_allergen_lookup_failure_during_update_is_retryable(review_engine, reference, monkeypatch):
    review = _create(review_engine, allergen_scores={"milk": 3})
    monkeypatch.setattr(reference, "allergen_ids", _async_fail)
    with pytest.raises(TransactionFailedError):
        asyncio.run(review_engine.update_review(
            review.id, ReviewUpdate(allergen_scores={"gluten": 1}), owner_id=7
        ))


def test_load_failure_during_update_and_delete_is_retryable(review_engine, reader, monkeypatch):
    review = _create(review_engine)
    monkeypatch.setattr(reader, "get_review", _async_fail)

    with pytest.raises(TransactionFailedError):
        asyncio.run(review_engine.update_review(review.id, ReviewUpdate(overall_rating=1), owner_id=7))
    with pytest.raises(TransactionFailedError):
        asyncio.run(review_engine.delete_review(review.id, owner_id=7))
    with pytest.raises(TransactionFailedError):
        asyncio.run(review_engine.moderate_review(review.id, "approved", moderator_id=1))


# ── Mapping payloads ─────────────────────────────────────────────────────────


def test_mapping_update_with_out_of_range_values_is_rejected(review_engine, reader):
    review = _create(review_engine, overall_rating=3, allergen_scores={"milk": 2})

    with pytest.raises(ValidationFailedError):
        asyncio.run(review_engine.update_review(review.id, {"overall_rating": 99}, owner_id=7))
    with pytest.raises(ValidationFailedError):
        asyncio.run(review_engine.update_review(review.id, {"allergen_scores": {"milk": 42}}, owner_id=7))

    stored = asyncio.run(reader.get_review(review.id))
    assert stored.overall_rating == 3
    assert stored.allergen_scores == {"milk": 2}


def test_mapping_create_with_out_of_range_rating_is_rejected(review_engine, session_factory):
    with pytest.raises(ValidationFailedError):
        asyncio.run(review_engine.create_review({"user_id": 7, "establishment_id": 42, "overall_rating": 0}))
    assert _count(session_factory, Review) == 0


def test_mapping_payloads_are_coerced_like_request_bodies(review_engine):
    review = asyncio.run(review_engine.create_review({
        "userId": 7,
        "establishmentId": 42,
        "visitDate": "2024-05-01",
    }))
    assert review.visit_date == date(2024, 5, 1)

    updated = asyncio.run(review_engine.update_review(
        review.id, {"visit_date": "2024-06-02"}, owner_id=7
    ))
    assert updated.visit_date == date(2024, 6, 2)
