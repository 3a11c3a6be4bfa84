from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database import get_db
from app.db_helpers import get_user_id
from app.models import Budget, Goal
from app.schemas import (
    BudgetCreate,
    BudgetResponse,
    BudgetUpdate,
    GoalCreate,
    GoalResponse,
    GoalUpdate,
)
from app.services.budget_service import BudgetService, GoalService
from app.services.errors import NotFoundError

router = APIRouter()
goals_router = APIRouter()


def _budget_response(service: BudgetService, budget: Budget) -> BudgetResponse:
    return BudgetResponse(
        id=budget.id,
        category_id=budget.category_id,
        category_name=budget.category.name if budget.category else None,
        amount=budget.amount,
        start_date=budget.start_date,
        end_date=budget.end_date,
        total_spent=service.total_spent(budget),
    )


def _goal_response(service: GoalService, goal: Goal) -> GoalResponse:
    return GoalResponse(
        id=goal.id,
        category_id=goal.category_id,
        category_name=goal.category.name if goal.category else None,
        amount=goal.amount,
        start_date=goal.start_date,
        end_date=goal.end_date,
        total_carbon_footprint=service.total_carbon_footprint(goal),
    )


@router.get("/", response_model=List[BudgetResponse])
def list_budgets(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    service = BudgetService(db)
    return [_budget_response(service, b) for b in service.list_for_user(user_id)]


@router.get("/{budget_id}", response_model=BudgetResponse)
def get_budget(budget_id: UUID, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    service = BudgetService(db)
    try:
        return _budget_response(service, service.get(budget_id, user_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Budget not found")


@router.post("/", response_model=BudgetResponse, status_code=201)
def create_budget(budget: BudgetCreate, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """Create a spending cap for a category over a date window."""
    user_id = get_user_id(user_id)
    service = BudgetService(db)
    try:
        created = service.create(user_id, budget.category_id, budget.amount, budget.start_date, budget.end_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _budget_response(service, created)


@router.patch("/{budget_id}", response_model=BudgetResponse)
def update_budget(
    budget_id: UUID,
    updates: BudgetUpdate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    user_id = get_user_id(user_id)
    service = BudgetService(db)
    try:
        updated = service.update(budget_id, user_id, updates.model_dump(exclude_unset=True))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _budget_response(service, updated)


@router.delete("/{budget_id}", status_code=204)
def delete_budget(budget_id: UUID, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    try:
        BudgetService(db).delete(budget_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Budget not found")
    return None


@goals_router.get("/", response_model=List[GoalResponse])
def list_goals(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    service = GoalService(db)
    return [_goal_response(service, g) for g in service.list_for_user(user_id)]


@goals_router.get("/{goal_id}", response_model=GoalResponse)
def get_goal(goal_id: UUID, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    service = GoalService(db)
    try:
        return _goal_response(service, service.get(goal_id, user_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Goal not found")


@goals_router.post("/", response_model=GoalResponse, status_code=201)
def create_goal(goal: GoalCreate, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """Create a carbon footprint cap (kg CO2) for a category over a date window."""
    user_id = get_user_id(user_id)
    service = GoalService(db)
    try:
        created = service.create(user_id, goal.category_id, goal.amount, goal.start_date, goal.end_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _goal_response(service, created)


@goals_router.patch("/{goal_id}", response_model=GoalResponse)
def update_goal(
    goal_id: UUID,
    updates: GoalUpdate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    user_id = get_user_id(user_id)
    service = GoalService(db)
    try:
        updated = service.update(goal_id, user_id, updates.model_dump(exclude_unset=True))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _goal_response(service, updated)


@goals_router.delete("/{goal_id}", status_code=204)
def delete_goal(goal_id: UUID, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user_id = get_user_id(user_id)
    try:
        GoalService(db).delete(goal_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Goal not found")
    return None
