"""
Shared fixtures-by-hand for service and API tests: SQLite-backed sessions,
a scripted completion client and small data builders.
"""
import os
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Union

from sqlalchemy.orm import sessionmaker

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import Base, build_engine, build_session_factory  # noqa: E402
from app.models import Category, Transaction, User  # noqa: E402
from app.services.errors import ExternalServiceError  # noqa: E402
from app.services.llm_client import CompletionClient  # noqa: E402


def make_session_factory(db_path: Optional[str] = None) -> sessionmaker:
    """
    In-memory SQLite by default; pass a file path when several independent
    connections are needed (e.g. to simulate concurrent requests).
    """
    url = "sqlite://" if db_path is None else f"sqlite:///{db_path}"
    engine = build_engine(url, allow_sqlite=True)
    Base.metadata.create_all(bind=engine)
    return build_session_factory(engine)


def make_session(db_path: Optional[str] = None):
    return make_session_factory(db_path)()


Reply = Union[str, Exception, Callable[[str], str]]


class FakeCompletionClient(CompletionClient):
    """
    Completion client that replays scripted replies and records prompts.

    Each reply is a string, an exception to raise, or a callable taking the
    prompt. When the script runs out the last reply is reused.
    """

    def __init__(self, *replies: Reply):
        self.replies: List[Reply] = list(replies) or ["1. Placeholder tip text"]
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        index = min(len(self.prompts) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class FailingCompletionClient(FakeCompletionClient):
    def __init__(self, message: str = "Request timed out."):
        super().__init__(ExternalServiceError(message))


def create_user(db, user_id: str = "user-1", email: str = "alex@example.com") -> User:
    user = User(id=user_id, email=email, first_name="Alex", last_name="Green")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_category(
    db,
    name: str = "Food",
    carbon_multiplier: Optional[float] = 1.8,
    user_id: Optional[str] = None,
) -> Category:
    category = Category(name=name, carbon_multiplier=carbon_multiplier, user_id=user_id)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def add_transaction(
    db,
    user: User,
    category: Category,
    amount: str = "10.00",
    days_ago: int = 0,
    description: Optional[str] = None,
    carbon_footprint: Optional[float] = None,
) -> Transaction:
    """Insert a transaction directly, bypassing attribution and invalidation."""
    transaction = Transaction(
        user_id=user.id,
        category_id=category.id,
        amount=Decimal(amount),
        transaction_type="expense",
        booked_at=datetime.utcnow() - timedelta(days=days_ago),
        description=description,
        carbon_footprint=carbon_footprint,
        carbon_footprint_is_ai_derived=False,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction
