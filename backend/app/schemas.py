from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from app.models import as_naive_utc


# Category Schemas
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class CategoryResponse(BaseModel):
    id: UUID
    name: str
    carbon_multiplier: Optional[float] = None
    is_predefined: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Transaction Schemas
class TransactionBase(BaseModel):
    category_id: UUID
    amount: Decimal
    transaction_type: Optional[str] = None  # expense, income
    booked_at: datetime
    description: Optional[str] = None

    booked_at_utc = field_validator("booked_at")(as_naive_utc)


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    category_id: Optional[UUID] = None
    amount: Optional[Decimal] = None
    transaction_type: Optional[str] = None
    booked_at: Optional[datetime] = None
    description: Optional[str] = None

    booked_at_utc = field_validator("booked_at")(as_naive_utc)

    @field_validator("category_id", "amount", "booked_at")
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to leave it unchanged; null is not a valid value for it
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class TransactionResponse(TransactionBase):
    id: UUID
    category_name: Optional[str] = None
    carbon_footprint: Optional[float] = None
    carbon_footprint_is_ai_derived: bool
    carbon_multiplier_used: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Budget / Goal Schemas
class PlanBase(BaseModel):
    category_id: UUID
    start_date: datetime
    end_date: datetime

    dates_utc = field_validator("start_date", "end_date")(as_naive_utc)


class BudgetCreate(PlanBase):
    amount: Decimal


class BudgetUpdate(BaseModel):
    category_id: Optional[UUID] = None
    amount: Optional[Decimal] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    dates_utc = field_validator("start_date", "end_date")(as_naive_utc)


class BudgetResponse(BudgetCreate):
    id: UUID
    category_name: Optional[str] = None
    total_spent: Decimal


class GoalCreate(PlanBase):
    amount: float  # kg CO2


class GoalUpdate(BaseModel):
    category_id: Optional[UUID] = None
    amount: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    dates_utc = field_validator("start_date", "end_date")(as_naive_utc)


class GoalResponse(GoalCreate):
    id: UUID
    category_name: Optional[str] = None
    total_carbon_footprint: float


# Advice Schemas
class RecommendationResponse(BaseModel):
    """Spending and/or carbon footprint tips."""
    spending_recommendations: Optional[List[str]] = None
    carbon_footprint_recommendations: Optional[List[str]] = None
    last_updated: Optional[datetime] = None
    degraded: bool = False


class BenchmarkResponse(BaseModel):
    benchmarks: List[str]
    last_updated: Optional[datetime] = None
    degraded: bool = False


# User Schemas
class UserProfileResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    recommendations_stale: bool
    benchmarks_stale: bool
