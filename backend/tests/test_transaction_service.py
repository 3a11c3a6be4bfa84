"""
Tests for the transaction lifecycle: attribution on write and invalidation of
cached advice for mutations inside the advice window.
"""
import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models import ADVICE_TYPES, AdviceCacheState, Transaction  # noqa: E402
from app.services.advice_cache import ensure_states, is_within_window, mark_advice_stale  # noqa: E402
from app.services.errors import NotFoundError  # noqa: E402
from app.services.transaction_service import TransactionService  # noqa: E402
from tests.support import (  # noqa: E402
    FakeCompletionClient,
    add_transaction,
    create_category,
    create_user,
    make_session,
)


def _versions(db, user_id):
    db.expire_all()
    states = db.query(AdviceCacheState).filter(AdviceCacheState.user_id == user_id).all()
    return {state.advice_type: state.version for state in states}


def _setup(client=None):
    db = make_session()
    user = create_user(db)
    food = create_category(db, "Food", 1.8)
    service = TransactionService(db, client or FakeCompletionClient("2.5"))
    return db, user, food, service


def test_create_attributes_footprint() -> None:
    db, user, food, service = _setup()
    transaction = service.create_transaction(
        user_email=user.email,
        category_id=food.id,
        amount=Decimal("100.00"),
        booked_at=datetime.utcnow(),
        transaction_type="expense",
    )
    assert transaction.carbon_footprint == pytest.approx(180.0)
    assert transaction.carbon_multiplier_used == 1.8
    assert transaction.carbon_footprint_is_ai_derived is False


def test_create_with_description_uses_llm_multiplier() -> None:
    client = FakeCompletionClient("The multiplier is approximately 2.5 kg/$")
    db, user, _, service = _setup(client)
    transport = create_category(db, "Transport", 0.9)
    transaction = service.create_transaction(
        user_email=user.email,
        category_id=transport.id,
        amount=Decimal("50.00"),
        booked_at=datetime.utcnow(),
        description="flight to Paris",
    )
    assert transaction.carbon_footprint == pytest.approx(125.0)
    assert transaction.carbon_footprint_is_ai_derived is True
    assert client.calls == 1


def test_create_inside_window_bumps_both_versions() -> None:
    db, user, food, service = _setup()
    service.create_transaction(user.email, food.id, Decimal("10.00"), datetime.utcnow())
    assert _versions(db, user.id) == {advice_type: 1 for advice_type in ADVICE_TYPES}


def test_create_outside_window_keeps_versions() -> None:
    db, user, food, service = _setup()
    service.create_transaction(user.email, food.id, Decimal("10.00"), datetime.utcnow() - timedelta(days=40))
    assert _versions(db, user.id) == {advice_type: 0 for advice_type in ADVICE_TYPES}


def test_create_for_unknown_user_or_category() -> None:
    db, user, food, service = _setup()
    with pytest.raises(NotFoundError):
        service.create_transaction("nobody@example.com", food.id, Decimal("1.00"), datetime.utcnow())
    with pytest.raises(NotFoundError):
        service.create_transaction(user.email, uuid4(), Decimal("1.00"), datetime.utcnow())
    assert db.query(Transaction).count() == 0


def test_other_users_category_is_not_visible() -> None:
    db, user, _, service = _setup()
    other = create_user(db, user_id="user-2", email="sam@example.com")
    private = create_category(db, "Hobbies", 0.4, user_id=other.id)
    with pytest.raises(NotFoundError):
        service.create_transaction(user.email, private.id, Decimal("1.00"), datetime.utcnow())


def test_update_amount_keeps_multiplier() -> None:
    client = FakeCompletionClient("2.5")
    db, user, _, service = _setup(client)
    transport = create_category(db, "Transport", 0.9)
    created = service.create_transaction(
        user.email, transport.id, Decimal("50.00"), datetime.utcnow(), description="flight to Paris"
    )

    updated = service.update_transaction(created.id, user.id, {"amount": Decimal("80.00")})

    assert updated.carbon_footprint == pytest.approx(200.0)
    assert updated.carbon_multiplier_used == 2.5
    assert updated.carbon_footprint_is_ai_derived is True
    assert client.calls == 1


def test_update_description_reattributes() -> None:
    client = FakeCompletionClient("2.5", "0.2")
    db, user, _, service = _setup(client)
    transport = create_category(db, "Transport", 0.9)
    created = service.create_transaction(
        user.email, transport.id, Decimal("50.00"), datetime.utcnow(), description="flight to Paris"
    )

    updated = service.update_transaction(created.id, user.id, {"description": "train to Paris"})

    assert updated.carbon_multiplier_used == 0.2
    assert updated.carbon_footprint == pytest.approx(10.0)
    assert client.calls == 2


def test_update_category_applies_new_default() -> None:
    db, user, food, service = _setup()
    shopping = create_category(db, "Shopping", 0.5)
    created = service.create_transaction(user.email, food.id, Decimal("10.00"), datetime.utcnow())

    updated = service.update_transaction(created.id, user.id, {"category_id": shopping.id})

    assert updated.category_id == shopping.id
    assert updated.carbon_footprint == pytest.approx(5.0)


def test_update_moving_out_of_window_still_invalidates() -> None:
    db, user, food, service = _setup()
    created = service.create_transaction(user.email, food.id, Decimal("10.00"), datetime.utcnow())
    service.update_transaction(created.id, user.id, {"booked_at": datetime.utcnow() - timedelta(days=60)})
    assert _versions(db, user.id)["recommendations"] == 2

    service.update_transaction(created.id, user.id, {"amount": Decimal("11.00")})
    assert _versions(db, user.id)["recommendations"] == 2


def test_delete_inside_window_invalidates() -> None:
    db, user, food, service = _setup()
    user_id = user.id
    recent_id = add_transaction(db, user, food, days_ago=1).id
    old_id = add_transaction(db, user, food, days_ago=45).id

    service.delete_transaction(old_id, user_id)
    assert _versions(db, user_id)["benchmarks"] == 0

    service.delete_transaction(recent_id, user_id)
    assert _versions(db, user_id)["benchmarks"] == 1
    assert db.query(Transaction).count() == 0

    with pytest.raises(NotFoundError):
        service.delete_transaction(recent_id, user_id)


def test_mark_stale_requires_state_rows() -> None:
    db = make_session()
    user = create_user(db)
    with pytest.raises(LookupError):
        mark_advice_stale(db, user.id)

    ensure_states(db, user.id)
    mark_advice_stale(db, user.id)
    mark_advice_stale(db, user.id)
    db.commit()
    assert _versions(db, user.id) == {advice_type: 2 for advice_type in ADVICE_TYPES}


def test_window_boundary() -> None:
    now = datetime(2024, 3, 31, 12, 0, 0)
    assert is_within_window(now, now=now)
    assert is_within_window(now - timedelta(days=29, hours=23), now=now)
    assert not is_within_window(now - timedelta(days=30), now=now)
    assert not is_within_window(None, now=now)


def test_list_is_newest_first_and_scoped_to_user() -> None:
    db, user, food, service = _setup()
    other = create_user(db, user_id="user-2", email="sam@example.com")
    older = add_transaction(db, user, food, days_ago=3)
    newer = add_transaction(db, user, food, days_ago=1)
    add_transaction(db, other, food)

    assert [t.id for t in service.list_transactions(user.id)] == [newer.id, older.id]
    with pytest.raises(NotFoundError):
        service.get_transaction(newer.id, other.id)
