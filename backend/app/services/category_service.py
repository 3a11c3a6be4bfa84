"""
Category catalog: predefined (global) categories plus the ones users create.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.db_helpers import commit_or_raise, get_user_by_id
from app.models import Category
from app.services.errors import NotFoundError
from app.services.llm_client import (
    CompletionClient,
    build_carbon_multiplier_prompt,
    get_carbon_multiplier,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAMES = [
    "Food",
    "Transport",
    "Groceries",
    "Healthcare",
    "Entertainment",
    "Beauty",
    "Home and Family",
    "Shopping",
    "Income",
]

# Categories whose multiplier is fixed rather than asked for.
FIXED_MULTIPLIERS = {"Income": 0.0}


class CategoryService:
    """Lists, looks up and creates categories."""

    def __init__(self, db: Session, client: Optional[CompletionClient] = None):
        self.db = db
        self.client = client

    def _default_multiplier(self, category_name: str) -> Optional[float]:
        if category_name in FIXED_MULTIPLIERS:
            return FIXED_MULTIPLIERS[category_name]
        if self.client is None:
            return None
        prompt = build_carbon_multiplier_prompt(category_name)
        return get_carbon_multiplier(self.client, prompt)

    def list_for_user(self, user_id: str) -> List[Category]:
        """Categories owned by the user plus all predefined ones."""
        return (
            self.db.query(Category)
            .filter(or_(Category.user_id == user_id, Category.user_id.is_(None)))
            .order_by(Category.name)
            .all()
        )

    def get_category(self, category_id: UUID, user_id: str) -> Category:
        """Fetch a category the user can see."""
        category = self.db.query(Category).filter(
            Category.id == category_id,
            or_(Category.user_id == user_id, Category.user_id.is_(None)),
        ).first()
        if not category:
            raise NotFoundError(f"Category not found: {category_id}")
        return category

    def create_category(self, name: str, user_id: str) -> Category:
        """
        Create a user-owned category.
        Its default multiplier is asked from the LLM; a failure leaves it unknown.
        """
        user = get_user_by_id(self.db, user_id)
        multiplier = self._default_multiplier(name)
        category = Category(name=name, user_id=user.id, carbon_multiplier=multiplier)
        self.db.add(category)
        commit_or_raise(self.db)
        self.db.refresh(category)
        logger.info(f"Created category '{name}' for user {user_id} (multiplier: {multiplier})")
        return category

    def seed_default_categories(self) -> int:
        """
        Create the predefined categories if the catalog is empty.

        Returns:
            Number of categories created
        """
        if self.db.query(Category).count() > 0:
            logger.info("Categories already present, skipping default seed")
            return 0

        for name in DEFAULT_CATEGORY_NAMES:
            self.db.add(Category(name=name, user_id=None, carbon_multiplier=self._default_multiplier(name)))
        commit_or_raise(self.db)
        logger.info(f"Default categories with multipliers have been loaded ({len(DEFAULT_CATEGORY_NAMES)})")
        return len(DEFAULT_CATEGORY_NAMES)
