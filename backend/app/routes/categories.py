from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.database import get_db
from app.db_helpers import get_user_id
from app.schemas import CategoryCreate, CategoryResponse
from app.services.category_service import CategoryService
from app.services.errors import NotFoundError
from app.services.llm_client import CompletionClient, get_completion_client

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=List[CategoryResponse])
def list_categories(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List predefined categories plus the current user's own."""
    user_id = get_user_id(user_id)
    return CategoryService(db).list_for_user(user_id)


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Get a specific category by ID."""
    user_id = get_user_id(user_id)
    try:
        return CategoryService(db).get_category(category_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Category not found")


@router.post("/", response_model=CategoryResponse, status_code=201)
def create_category(
    category: CategoryCreate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Create a category owned by the current user, with an LLM-derived default multiplier."""
    user_id = get_user_id(user_id)
    try:
        return CategoryService(db, client).create_category(category.name.strip(), user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
