from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.db_helpers import get_user_by_id, get_user_id
from app.models import ADVICE_TYPE_BENCHMARKS, ADVICE_TYPE_RECOMMENDATIONS
from app.schemas import UserProfileResponse
from app.services.advice_cache import get_staleness
from app.services.errors import NotFoundError

router = APIRouter()


@router.get("/me", response_model=UserProfileResponse)
def get_current_user(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    """Profile of the current user, including whether cached advice is out of date."""
    user_id = get_user_id(user_id)
    try:
        user = get_user_by_id(db, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")

    staleness = get_staleness(db, user.id)
    return UserProfileResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        recommendations_stale=staleness[ADVICE_TYPE_RECOMMENDATIONS],
        benchmarks_stale=staleness[ADVICE_TYPE_BENCHMARKS],
    )
