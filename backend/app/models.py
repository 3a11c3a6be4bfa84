"""
SQLAlchemy models for users, spending categories, transactions, budgets, goals
and the cached LLM advice (recommendations and benchmarks).
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Numeric,
    Float,
    Text,
    Integer,
    ForeignKey,
    Index,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base


ADVICE_TYPE_RECOMMENDATIONS = "recommendations"
ADVICE_TYPE_BENCHMARKS = "benchmarks"
ADVICE_TYPES = (ADVICE_TYPE_RECOMMENDATIONS, ADVICE_TYPE_BENCHMARKS)


@dataclass(frozen=True)
class GlobalScope:
    """Predefined category visible to every user."""


@dataclass(frozen=True)
class OwnedScope:
    """Category created by, and visible only to, one user."""
    user_id: str


CategoryScope = Union[GlobalScope, OwnedScope]


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamp columns hold naive UTC; convert aware datetimes to that form."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class User(Base):
    """
    User model for the external auth integration.
    Identity and credentials are managed outside this service; the id is issued there.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(Text, unique=True, nullable=False)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    categories = relationship("Category", back_populates="user", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="user", cascade="all, delete-orphan")
    budgets = relationship("Budget", back_populates="user", cascade="all, delete-orphan")
    goals = relationship("Goal", back_populates="user", cascade="all, delete-orphan")
    recommendation = relationship("Recommendation", back_populates="user", uselist=False, cascade="all, delete-orphan")
    benchmark = relationship("Benchmark", back_populates="user", uselist=False, cascade="all, delete-orphan")
    advice_cache_states = relationship("AdviceCacheState", back_populates="user", cascade="all, delete-orphan")


class Category(Base):
    """
    Spending category.
    Rows without a user_id are predefined (global) categories.
    """
    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    carbon_multiplier = Column(Float, nullable=True)  # kg CO2 per currency unit, None = unknown
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="categories")
    transactions = relationship("Transaction", back_populates="category")

    __table_args__ = (
        Index("idx_categories_user", "user_id"),
    )

    @property
    def scope(self) -> CategoryScope:
        if self.user_id is None:
            return GlobalScope()
        return OwnedScope(user_id=self.user_id)

    @property
    def is_predefined(self) -> bool:
        return isinstance(self.scope, GlobalScope)


class Transaction(Base):
    """
    Transaction with its attributed carbon footprint.
    carbon_multiplier_used records the multiplier that produced carbon_footprint.
    """
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    transaction_type = Column(String(20))  # expense, income
    booked_at = Column(DateTime, nullable=False, index=True)
    description = Column(Text, nullable=True)
    carbon_footprint = Column(Float, nullable=True)
    carbon_footprint_is_ai_derived = Column(Boolean, default=False, nullable=False)
    carbon_multiplier_used = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")
    category = relationship("Category", back_populates="transactions")

    __table_args__ = (
        Index("idx_transactions_user", "user_id"),
        Index("idx_transactions_booked_at", "booked_at"),
        Index("idx_transactions_category", "category_id"),
    )


class Budget(Base):
    """Spending cap for a category over a date window."""
    __tablename__ = "budgets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="budgets")
    category = relationship("Category")


class Goal(Base):
    """Carbon footprint cap (kg CO2) for a category over a date window."""
    __tablename__ = "goals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Uuid, ForeignKey("categories.id"), nullable=False)
    amount = Column(Float, nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="goals")
    category = relationship("Category")


class Recommendation(Base):
    """
    Cached spending and carbon footprint tips for a user.
    source_version is the advice cache version the tips were generated from.
    """
    __tablename__ = "recommendations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    spending_recommendations = Column(JSON, nullable=False, default=list)
    carbon_footprint_recommendations = Column(JSON, nullable=False, default=list)
    source_version = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="recommendation")

    __table_args__ = (
        UniqueConstraint("user_id", name="recommendations_user"),
    )


class Benchmark(Base):
    """Cached benchmark/comparison statements for a user."""
    __tablename__ = "benchmarks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    benchmarks = Column(JSON, nullable=False, default=list)
    source_version = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="benchmark")

    __table_args__ = (
        UniqueConstraint("user_id", name="benchmarks_user"),
    )


class AdviceCacheState(Base):
    """
    Invalidation state for one (user, advice type) pair.

    version is bumped whenever a transaction inside the advice window changes.
    refresh_claimed_at/refresh_token form a lease held by the request that is
    currently regenerating the advice.
    """
    __tablename__ = "advice_cache_states"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    advice_type = Column(String(20), nullable=False)  # recommendations, benchmarks
    version = Column(Integer, nullable=False, default=0)
    refresh_claimed_at = Column(DateTime, nullable=True)
    refresh_token = Column(String(36), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="advice_cache_states")

    __table_args__ = (
        Index("idx_advice_cache_states_user", "user_id"),
        UniqueConstraint("user_id", "advice_type", name="advice_cache_states_user_type"),
    )

    def is_fresh(self, source_version: Optional[int]) -> bool:
        return source_version is not None and source_version >= (self.version or 0)
