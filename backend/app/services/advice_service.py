"""
Recommendation and benchmark refresh pipeline.

Cached advice is returned as long as it was generated from the current advice
cache version. Otherwise one request claims the refresh lease, builds prompts
from the user's recent transactions, asks the LLM and replaces the cached
record in a single commit. LLM failures never overwrite cached advice; the
caller gets a degraded result carrying the error text instead.
"""
import json
import os
import time
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.db_helpers import commit_or_raise, get_user_by_email
from app.models import (
    ADVICE_TYPE_BENCHMARKS,
    ADVICE_TYPE_RECOMMENDATIONS,
    AdviceCacheState,
    Benchmark,
    Recommendation,
    Transaction,
    User,
)
from app.services.advice_cache import (
    claim_refresh,
    current_version,
    get_or_create_state,
    release_refresh,
    window_start,
)
from app.services.llm_client import (
    ERROR_MARKER,
    CompletionClient,
    get_recommendation,
    is_degraded,
)
from app.services.tip_parser import parse_tips

logger = logging.getLogger(__name__)

MAX_PROMPT_TRANSACTIONS = 10
MAX_DESCRIPTION_LENGTH = 50


@dataclass
class AdviceResult:
    """
    Advice returned to callers.

    Attributes:
        tips: tip lists keyed by kind (e.g. 'spending', 'carbon_footprint', 'benchmarks')
        last_updated: when the tips were generated (None for degraded results)
        refreshed: True when the LLM was called for this request
        degraded: True when the tips are an error message rather than advice
    """
    tips: Dict[str, List[str]] = field(default_factory=dict)
    last_updated: Optional[datetime] = None
    refreshed: bool = False
    degraded: bool = False


def truncate_description(description: Optional[str]) -> str:
    if description is None:
        return "No description"
    if len(description) > MAX_DESCRIPTION_LENGTH:
        return description[:MAX_DESCRIPTION_LENGTH] + "..."
    return description


def _category_name(transaction: Transaction) -> str:
    return transaction.category.name if transaction.category else "Uncategorized"


def _json_list(entries: List[dict]) -> str:
    return "[" + ", ".join(json.dumps(entry) for entry in entries) + "]"


class CachedAdviceService:
    """
    Shared refresh engine. Subclasses define the advice type, the record model,
    the prompts and how parsed tips map onto the record.
    """

    ADVICE_TYPE: str = ""
    RECORD_MODEL = None

    REFRESH_WAIT_SECONDS = float(os.getenv("ADVICE_REFRESH_WAIT_SECONDS", "10"))
    REFRESH_POLL_INTERVAL = 0.5

    def __init__(
        self,
        db: Session,
        client: CompletionClient,
        refresh_wait_seconds: Optional[float] = None,
    ):
        self.db = db
        self.client = client
        self.refresh_wait_seconds = (
            self.REFRESH_WAIT_SECONDS if refresh_wait_seconds is None else refresh_wait_seconds
        )

    # Subclass hooks

    def build_prompts(self, transactions: List[Transaction]) -> Dict[str, str]:
        raise NotImplementedError

    def tips_from_record(self, record) -> Dict[str, List[str]]:
        raise NotImplementedError

    def write_tips(self, record, tips: Dict[str, List[str]]) -> None:
        raise NotImplementedError

    # Pipeline

    def _load_record(self, user_id: str):
        return self.db.query(self.RECORD_MODEL).filter(self.RECORD_MODEL.user_id == user_id).first()

    def _recent_transactions(self, user_id: str) -> List[Transaction]:
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.booked_at > window_start(),
            )
            .order_by(Transaction.booked_at.desc())
            .all()
        )

    def _result_from_record(self, record, refreshed: bool = False) -> AdviceResult:
        return AdviceResult(
            tips=self.tips_from_record(record),
            last_updated=record.last_updated,
            refreshed=refreshed,
        )

    def _degraded(self, message: str) -> AdviceResult:
        keys = self.tips_from_record(None).keys()
        return AdviceResult(tips={key: [message] for key in keys}, degraded=True)

    def get_advice(self, email: str) -> AdviceResult:
        user = get_user_by_email(self.db, email)
        state = get_or_create_state(self.db, user.id, self.ADVICE_TYPE)
        record = self._load_record(user.id)

        if record is not None and state.is_fresh(record.source_version):
            logger.info(f"Using existing {self.ADVICE_TYPE} for user: {email}")
            return self._result_from_record(record)

        token = claim_refresh(self.db, state)
        if token is None:
            return self._wait_for_refresh(user, state)

        logger.info(f"Fetching new {self.ADVICE_TYPE} for user: {email}")
        try:
            return self._refresh(user, state, token)
        except Exception:
            self.db.rollback()
            release_refresh(self.db, state, token)
            self.db.commit()
            raise

    def _refresh(self, user: User, state: AdviceCacheState, token: str) -> AdviceResult:
        observed_version = current_version(self.db, state)
        transactions = self._recent_transactions(user.id)
        prompts = self.build_prompts(transactions)

        responses = {}
        for key, prompt in prompts.items():
            response = get_recommendation(self.client, prompt)
            if is_degraded(response):
                logger.warning(f"Keeping cached {self.ADVICE_TYPE} for user {user.id}: {response}")
                release_refresh(self.db, state, token)
                commit_or_raise(self.db)
                return self._degraded(response)
            responses[key] = response

        tips = {key: parse_tips(text) for key, text in responses.items()}

        record = self._load_record(user.id)
        if record is None:
            record = self.RECORD_MODEL(user_id=user.id)
            self.db.add(record)
        self.write_tips(record, tips)
        record.last_updated = datetime.utcnow()
        record.source_version = observed_version
        release_refresh(self.db, state, token)
        commit_or_raise(self.db)
        self.db.refresh(record)

        logger.info(f"Stored {self.ADVICE_TYPE} for user {user.id} at version {observed_version}")
        return self._result_from_record(record, refreshed=True)

    def _wait_for_refresh(self, user: User, state: AdviceCacheState) -> AdviceResult:
        """
        Another request holds the lease. Serve whatever is cached; with nothing
        cached, wait for the other refresh to land.
        """
        deadline = time.monotonic() + self.refresh_wait_seconds
        while True:
            self.db.expire_all()
            record = self._load_record(user.id)
            if record is not None:
                return self._result_from_record(record)
            if time.monotonic() >= deadline:
                break
            time.sleep(self.REFRESH_POLL_INTERVAL)

        return self._degraded(f"{ERROR_MARKER} {self.ADVICE_TYPE} are still being generated, try again shortly")


class RecommendationService(CachedAdviceService):
    """Spending and carbon footprint tips."""

    ADVICE_TYPE = ADVICE_TYPE_RECOMMENDATIONS
    RECORD_MODEL = Recommendation

    def build_prompts(self, transactions: List[Transaction]) -> Dict[str, str]:
        return {
            "spending": self.create_spending_prompt(transactions),
            "carbon_footprint": self.create_carbon_footprint_prompt(transactions),
        }

    @staticmethod
    def create_spending_prompt(transactions: List[Transaction]) -> str:
        entries = [
            {
                "category": _category_name(t),
                "amount": round(float(t.amount), 2),
                "description": truncate_description(t.description),
            }
            for t in transactions[:MAX_PROMPT_TRANSACTIONS]
        ]
        return (
            "Analyze the following transaction data and provide 4-5 personalized spending recommendations. "
            "Each recommendation should be concise and start with a number followed by a period. "
            "Here are the transaction details in JSON format:\n"
            f"{_json_list(entries)}\n"
            "Please provide actionable recommendations based on spending patterns."
        )

    @staticmethod
    def create_carbon_footprint_prompt(transactions: List[Transaction]) -> str:
        entries = [
            {
                "category": _category_name(t),
                "carbonFootprint": round(t.carbon_footprint or 0.0, 2),
                "description": truncate_description(t.description),
            }
            for t in transactions[:MAX_PROMPT_TRANSACTIONS]
        ]
        return (
            "Analyze the following transaction data and provide 4-5 personalized recommendations "
            "for reducing carbon footprint. "
            "Recommendations should start with a number followed by a period. "
            "Here are the transaction details in JSON format:\n"
            f"{_json_list(entries)}\n"
            "Please provide actionable tips based on the carbon footprint patterns. "
            "Give a response in the context of the UK and Europe."
        )

    def tips_from_record(self, record: Optional[Recommendation]) -> Dict[str, List[str]]:
        if record is None:
            return {"spending": [], "carbon_footprint": []}
        return {
            "spending": list(record.spending_recommendations or []),
            "carbon_footprint": list(record.carbon_footprint_recommendations or []),
        }

    def write_tips(self, record: Recommendation, tips: Dict[str, List[str]]) -> None:
        record.spending_recommendations = tips["spending"]
        record.carbon_footprint_recommendations = tips["carbon_footprint"]

    def get_recommendations_for_user(self, email: str) -> AdviceResult:
        return self.get_advice(email)


class BenchmarkService(CachedAdviceService):
    """Benchmarks and comparisons that put the user's footprint in context."""

    ADVICE_TYPE = ADVICE_TYPE_BENCHMARKS
    RECORD_MODEL = Benchmark

    def build_prompts(self, transactions: List[Transaction]) -> Dict[str, str]:
        return {"benchmarks": self.create_benchmark_prompt(transactions)}

    @staticmethod
    def aggregate_by_category(transactions: List[Transaction]) -> "OrderedDict[str, Dict[str, float]]":
        totals: Dict[str, Dict[str, float]] = {}
        for t in transactions:
            bucket = totals.setdefault(_category_name(t), {"amount": 0.0, "carbonFootprint": 0.0})
            bucket["amount"] += float(t.amount)
            bucket["carbonFootprint"] += t.carbon_footprint or 0.0
        return OrderedDict(sorted(totals.items()))

    @classmethod
    def create_benchmark_prompt(cls, transactions: List[Transaction]) -> str:
        entries = [
            {
                "category": category,
                "amount": round(values["amount"], 2),
                "carbonFootprint": round(values["carbonFootprint"], 2),
            }
            for category, values in cls.aggregate_by_category(transactions).items()
            if values["amount"] > 0 or values["carbonFootprint"] > 0
        ]
        return (
            "Analyze the following spending and carbon footprint data per category for the current user "
            "and provide 4-5 personalized benchmarks and comparisons to help contextualize the carbon footprint. "
            "Each benchmark should be concise and start with a number followed by a period. "
            "Here are the spending and carbon footprint details:\n"
            f"{_json_list(entries)}\n"
            "Please provide meaningful benchmarks/comparisons based on the spending patterns and comparisons "
            "for carbon footprint, such as \"This is equivalent to driving X miles\" or "
            "\"X% below/above the national average\". Give a response in the context of the UK and Europe."
        )

    def tips_from_record(self, record: Optional[Benchmark]) -> Dict[str, List[str]]:
        if record is None:
            return {"benchmarks": []}
        return {"benchmarks": list(record.benchmarks or [])}

    def write_tips(self, record: Benchmark, tips: Dict[str, List[str]]) -> None:
        record.benchmarks = tips["benchmarks"]

    def get_benchmarks_for_user(self, email: str) -> AdviceResult:
        return self.get_advice(email)
