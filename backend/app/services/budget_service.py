"""
Budgets (spending caps) and goals (carbon footprint caps) per category.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db_helpers import commit_or_raise, get_user_by_id
from app.models import Budget, Goal, Transaction
from app.services.category_service import CategoryService
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _transactions_in_window(db: Session, column, user_id: str, category_id: UUID, start: datetime, end: datetime):
    return db.query(func.sum(column)).filter(
        Transaction.user_id == user_id,
        Transaction.category_id == category_id,
        Transaction.booked_at >= start,
        Transaction.booked_at <= end,
    ).scalar()


def calculate_total_spent(db: Session, user_id: str, category_id: UUID, start: datetime, end: datetime) -> Decimal:
    total = _transactions_in_window(db, Transaction.amount, user_id, category_id, start, end)
    return Decimal(str(total or 0))


def calculate_total_carbon_footprint(db: Session, user_id: str, category_id: UUID, start: datetime, end: datetime) -> float:
    """Sum of footprints in the window; transactions without a footprint count as zero."""
    total = _transactions_in_window(db, Transaction.carbon_footprint, user_id, category_id, start, end)
    return float(total or 0.0)


class _PlanService:
    """CRUD shared by budgets and goals."""

    MODEL = None
    LABEL = ""

    def __init__(self, db: Session):
        self.db = db
        self.categories = CategoryService(db)

    def _validate_window(self, start_date: datetime, end_date: datetime) -> None:
        if end_date < start_date:
            raise ValueError(f"{self.LABEL} end_date must not be before start_date")

    def list_for_user(self, user_id: str) -> List:
        return (
            self.db.query(self.MODEL)
            .filter(self.MODEL.user_id == user_id)
            .order_by(self.MODEL.start_date.desc())
            .all()
        )

    def get(self, plan_id: UUID, user_id: str):
        plan = self.db.query(self.MODEL).filter(
            self.MODEL.id == plan_id,
            self.MODEL.user_id == user_id,
        ).first()
        if not plan:
            raise NotFoundError(f"{self.LABEL} not found for ID: {plan_id}")
        return plan

    def create(
        self,
        user_id: str,
        category_id: UUID,
        amount: Union[Decimal, float],
        start_date: datetime,
        end_date: datetime,
    ):
        self._validate_window(start_date, end_date)
        user = get_user_by_id(self.db, user_id)
        category = self.categories.get_category(category_id, user.id)
        plan = self.MODEL(
            user_id=user.id,
            category_id=category.id,
            amount=amount,
            start_date=start_date,
            end_date=end_date,
        )
        self.db.add(plan)
        commit_or_raise(self.db)
        self.db.refresh(plan)
        return plan

    def update(self, plan_id: UUID, user_id: str, updates: dict):
        plan = self.get(plan_id, user_id)
        if updates.get("category_id") is not None:
            plan.category_id = self.categories.get_category(updates["category_id"], user_id).id
        for field in ("amount", "start_date", "end_date"):
            if updates.get(field) is not None:
                setattr(plan, field, updates[field])
        self._validate_window(plan.start_date, plan.end_date)
        commit_or_raise(self.db)
        self.db.refresh(plan)
        return plan

    def delete(self, plan_id: UUID, user_id: str) -> None:
        plan = self.get(plan_id, user_id)
        self.db.delete(plan)
        commit_or_raise(self.db)
        logger.info(f"Deleted {self.LABEL.lower()} {plan_id} for user {user_id}")


class BudgetService(_PlanService):
    MODEL = Budget
    LABEL = "Budget"

    def total_spent(self, budget: Budget) -> Decimal:
        return calculate_total_spent(
            self.db, budget.user_id, budget.category_id, budget.start_date, budget.end_date
        )


class GoalService(_PlanService):
    MODEL = Goal
    LABEL = "Goal"

    def total_carbon_footprint(self, goal: Goal) -> float:
        return calculate_total_carbon_footprint(
            self.db, goal.user_id, goal.category_id, goal.start_date, goal.end_date
        )
