"""
Carbon footprint attribution for transactions.

A multiplier derived by the LLM from the transaction description takes
precedence over the category's default multiplier.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from app.models import Category, Transaction
from app.services.llm_client import (
    CompletionClient,
    build_carbon_multiplier_prompt,
    get_carbon_multiplier,
)

logger = logging.getLogger(__name__)


@dataclass
class AttributionResult:
    """
    Attributes:
        footprint: kg CO2 attributed to the transaction (None if unknown)
        multiplier: kg CO2 per currency unit that produced footprint
        is_ai_derived: True when multiplier came from the LLM
    """
    footprint: Optional[float]
    multiplier: Optional[float]
    is_ai_derived: bool

    def apply_to(self, transaction: Transaction) -> None:
        transaction.carbon_footprint = self.footprint
        transaction.carbon_multiplier_used = self.multiplier
        transaction.carbon_footprint_is_ai_derived = self.is_ai_derived


def _footprint(amount: Union[Decimal, float, int], multiplier: float) -> float:
    return float(amount) * multiplier


class CarbonAttributionEngine:
    """
    Computes a transaction's carbon footprint.

    Precedence:
    1. LLM multiplier for the description (only when the description is non-empty)
    2. The category's default multiplier
    3. Unknown (None)
    """

    def __init__(self, client: CompletionClient):
        self.client = client

    def ai_multiplier(self, category_name: str, description: Optional[str]) -> Optional[float]:
        if description is None or not description.strip():
            return None
        prompt = build_carbon_multiplier_prompt(category_name, description)
        return get_carbon_multiplier(self.client, prompt)

    def attribute(self, transaction: Transaction, category: Category) -> AttributionResult:
        multiplier = self.ai_multiplier(category.name, transaction.description)
        if multiplier is not None:
            logger.debug(f"Using LLM multiplier {multiplier} for '{transaction.description}'")
            return AttributionResult(_footprint(transaction.amount, multiplier), multiplier, True)

        return self.from_category(transaction.amount, category)

    @staticmethod
    def from_category(amount: Union[Decimal, float, int], category: Category) -> AttributionResult:
        if category.carbon_multiplier is not None:
            return AttributionResult(
                _footprint(amount, category.carbon_multiplier),
                category.carbon_multiplier,
                False,
            )
        return AttributionResult(None, None, False)

    def reattribute(
        self,
        transaction: Transaction,
        category: Category,
        description_changed: bool,
        category_changed: bool = False,
    ) -> AttributionResult:
        """
        Recompute attribution after an edit.

        The LLM is consulted again only when the description changed. Otherwise
        the stored multiplier is kept and re-applied to the (possibly new)
        amount, except that a category default is swapped for the new
        category's default when the category changed.
        """
        if description_changed:
            return self.attribute(transaction, category)

        if category_changed and not transaction.carbon_footprint_is_ai_derived:
            return self.from_category(transaction.amount, category)

        multiplier = transaction.carbon_multiplier_used
        if multiplier is None:
            return AttributionResult(None, None, False)
        return AttributionResult(
            _footprint(transaction.amount, multiplier),
            multiplier,
            bool(transaction.carbon_footprint_is_ai_derived),
        )
