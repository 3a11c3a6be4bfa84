from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.database import get_db
from app.db_helpers import get_user_by_id, get_user_id
from app.schemas import BenchmarkResponse, RecommendationResponse
from app.services.advice_service import AdviceResult, BenchmarkService, RecommendationService
from app.services.errors import NotFoundError
from app.services.llm_client import CompletionClient, get_completion_client

logger = logging.getLogger(__name__)

router = APIRouter()
benchmarks_router = APIRouter()


def _recommendations_for(user_id: str, db: Session, client: CompletionClient) -> AdviceResult:
    try:
        user = get_user_by_id(db, user_id)
        return RecommendationService(db, client).get_recommendations_for_user(user.email)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


@router.get("/spending", response_model=RecommendationResponse)
def get_spending_recommendations(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Spending tips based on the last 30 days of transactions."""
    user_id = get_user_id(user_id)
    result = _recommendations_for(user_id, db, client)
    if not result.tips["spending"]:
        raise HTTPException(status_code=404, detail="Spending recommendations not found.")
    return RecommendationResponse(
        spending_recommendations=result.tips["spending"],
        last_updated=result.last_updated,
        degraded=result.degraded,
    )


@router.get("/carbon-footprint", response_model=RecommendationResponse)
def get_carbon_footprint_recommendations(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Carbon footprint reduction tips based on the last 30 days of transactions."""
    user_id = get_user_id(user_id)
    result = _recommendations_for(user_id, db, client)
    if not result.tips["carbon_footprint"]:
        raise HTTPException(status_code=404, detail="Carbon footprint recommendations not found.")
    return RecommendationResponse(
        carbon_footprint_recommendations=result.tips["carbon_footprint"],
        last_updated=result.last_updated,
        degraded=result.degraded,
    )


@benchmarks_router.get("/", response_model=BenchmarkResponse)
def get_benchmarks(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Benchmarks and comparisons for the user's recent carbon footprint."""
    user_id = get_user_id(user_id)
    try:
        user = get_user_by_id(db, user_id)
        result = BenchmarkService(db, client).get_benchmarks_for_user(user.email)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    if not result.tips["benchmarks"]:
        raise HTTPException(status_code=404, detail="Benchmarks not found.")
    return BenchmarkResponse(
        benchmarks=result.tips["benchmarks"],
        last_updated=result.last_updated,
        degraded=result.degraded,
    )
