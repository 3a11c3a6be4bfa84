"""
Tests for budgets (spending caps) and goals (carbon footprint caps).
"""
import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.services.budget_service import BudgetService, GoalService  # noqa: E402
from app.services.errors import NotFoundError  # noqa: E402
from tests.support import add_transaction, create_category, create_user, make_session  # noqa: E402


def _window():
    now = datetime.utcnow()
    return now - timedelta(days=7), now + timedelta(days=1)


def test_budget_total_spent_is_scoped_to_user_category_and_window() -> None:
    db = make_session()
    user = create_user(db)
    other = create_user(db, user_id="user-2", email="sam@example.com")
    food = create_category(db, "Food", 1.8)
    transport = create_category(db, "Transport", 0.25)

    add_transaction(db, user, food, amount="10.00", days_ago=1)
    add_transaction(db, user, food, amount="2.50", days_ago=3)
    add_transaction(db, user, food, amount="99.00", days_ago=20)
    add_transaction(db, user, transport, amount="40.00", days_ago=1)
    add_transaction(db, other, food, amount="500.00", days_ago=1)

    start, end = _window()
    service = BudgetService(db)
    budget = service.create(user.id, food.id, Decimal("100.00"), start, end)

    assert service.total_spent(budget) == Decimal("12.50")
    assert [b.id for b in service.list_for_user(user.id)] == [budget.id]
    assert service.list_for_user(other.id) == []


def test_goal_total_counts_missing_footprints_as_zero() -> None:
    db = make_session()
    user = create_user(db)
    food = create_category(db, "Food", 1.8)
    add_transaction(db, user, food, amount="10.00", days_ago=1, carbon_footprint=18.0)
    add_transaction(db, user, food, amount="5.00", days_ago=2, carbon_footprint=None)
    add_transaction(db, user, food, amount="1.00", days_ago=2, carbon_footprint=1.8)

    start, end = _window()
    service = GoalService(db)
    goal = service.create(user.id, food.id, 50.0, start, end)

    assert service.total_carbon_footprint(goal) == pytest.approx(19.8)


def test_empty_window_totals_are_zero() -> None:
    db = make_session()
    user = create_user(db)
    food = create_category(db, "Food", 1.8)
    start, end = _window()

    budget = BudgetService(db).create(user.id, food.id, Decimal("20.00"), start, end)
    goal = GoalService(db).create(user.id, food.id, 5.0, start, end)

    assert BudgetService(db).total_spent(budget) == Decimal("0")
    assert GoalService(db).total_carbon_footprint(goal) == 0.0


def test_invalid_window_is_rejected() -> None:
    db = make_session()
    user = create_user(db)
    food = create_category(db, "Food", 1.8)
    start, end = _window()

    with pytest.raises(ValueError):
        BudgetService(db).create(user.id, food.id, Decimal("20.00"), end, start)

    goal = GoalService(db).create(user.id, food.id, 5.0, start, end)
    with pytest.raises(ValueError):
        GoalService(db).update(goal.id, user.id, {"end_date": start - timedelta(days=1)})


def test_update_and_delete() -> None:
    db = make_session()
    user = create_user(db)
    food = create_category(db, "Food", 1.8)
    transport = create_category(db, "Transport", 0.25)
    start, end = _window()
    service = BudgetService(db)
    budget = service.create(user.id, food.id, Decimal("20.00"), start, end)
    budget_id = budget.id

    updated = service.update(budget_id, user.id, {"amount": Decimal("35.00"), "category_id": transport.id})
    assert updated.amount == Decimal("35.00")
    assert updated.category_id == transport.id

    service.delete(budget_id, user.id)
    with pytest.raises(NotFoundError):
        service.get(budget_id, user.id)
    with pytest.raises(NotFoundError):
        service.delete(uuid4(), user.id)


def test_plan_requires_visible_category() -> None:
    db = make_session()
    user = create_user(db)
    other = create_user(db, user_id="user-2", email="sam@example.com")
    private = create_category(db, "Secret", 0.1, user_id=other.id)
    start, end = _window()

    with pytest.raises(NotFoundError):
        GoalService(db).create(user.id, private.id, 5.0, start, end)
