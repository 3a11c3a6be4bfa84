"""
Transaction lifecycle: carbon attribution on create/update and invalidation of
cached advice when a mutation touches the advice window.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db_helpers import commit_or_raise, get_user_by_email
from app.models import Transaction, as_naive_utc
from app.services.advice_cache import ensure_states, is_within_window, mark_advice_stale
from app.services.carbon_attribution import CarbonAttributionEngine
from app.services.category_service import CategoryService
from app.services.errors import NotFoundError
from app.services.llm_client import CompletionClient

logger = logging.getLogger(__name__)


class TransactionService:
    """Creates, updates and deletes transactions for a user."""

    def __init__(self, db: Session, client: CompletionClient):
        self.db = db
        self.engine = CarbonAttributionEngine(client)
        self.categories = CategoryService(db)

    def list_transactions(self, user_id: str) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(Transaction.user_id == user_id)
            .order_by(Transaction.booked_at.desc())
            .all()
        )

    def get_transaction(self, transaction_id: UUID, user_id: str) -> Transaction:
        transaction = self.db.query(Transaction).filter(
            Transaction.id == transaction_id,
            Transaction.user_id == user_id,
        ).first()
        if not transaction:
            raise NotFoundError(f"Transaction not found with id: {transaction_id}")
        return transaction

    def create_transaction(
        self,
        user_email: str,
        category_id: UUID,
        amount: Decimal,
        booked_at: datetime,
        transaction_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        booked_at = as_naive_utc(booked_at)
        user = get_user_by_email(self.db, user_email)
        category = self.categories.get_category(category_id, user.id)
        ensure_states(self.db, user.id)

        transaction = Transaction(
            user_id=user.id,
            category_id=category.id,
            amount=amount,
            transaction_type=transaction_type,
            booked_at=booked_at,
            description=description,
        )
        self.engine.attribute(transaction, category).apply_to(transaction)
        self.db.add(transaction)

        if is_within_window(booked_at):
            mark_advice_stale(self.db, user.id)

        commit_or_raise(self.db)
        self.db.refresh(transaction)
        logger.info(
            f"Created transaction {transaction.id} for user {user.id} "
            f"(footprint: {transaction.carbon_footprint}, ai: {transaction.carbon_footprint_is_ai_derived})"
        )
        return transaction

    def update_transaction(self, transaction_id: UUID, user_id: str, updates: dict) -> Transaction:
        """
        Apply a partial update.

        Args:
            updates: field -> value for any of amount, transaction_type, booked_at,
                description, category_id (fields left out are unchanged)
        """
        if updates.get("booked_at") is not None:
            updates = {**updates, "booked_at": as_naive_utc(updates["booked_at"])}
        transaction = self.get_transaction(transaction_id, user_id)
        ensure_states(self.db, user_id)
        previous_booked_at = transaction.booked_at

        description_changed = (
            "description" in updates and updates["description"] != transaction.description
        )
        category_changed = (
            updates.get("category_id") is not None and updates["category_id"] != transaction.category_id
        )

        category = (
            self.categories.get_category(updates["category_id"], user_id)
            if category_changed
            else transaction.category
        )

        for field in ("amount", "transaction_type", "booked_at", "description"):
            if field in updates:
                setattr(transaction, field, updates[field])
        transaction.category_id = category.id
        transaction.category = category

        self.engine.reattribute(
            transaction,
            category,
            description_changed=description_changed,
            category_changed=category_changed,
        ).apply_to(transaction)

        if is_within_window(previous_booked_at) or is_within_window(transaction.booked_at):
            mark_advice_stale(self.db, user_id)

        commit_or_raise(self.db)
        self.db.refresh(transaction)
        return transaction

    def delete_transaction(self, transaction_id: UUID, user_id: str) -> None:
        transaction = self.get_transaction(transaction_id, user_id)
        ensure_states(self.db, user_id)
        if is_within_window(transaction.booked_at):
            mark_advice_stale(self.db, user_id)
        self.db.delete(transaction)
        commit_or_raise(self.db)
        logger.info(f"Deleted transaction {transaction_id} for user {user_id}")
