"""
Invalidation bookkeeping for cached advice (recommendations and benchmarks).

Every (user, advice type) pair has an AdviceCacheState row. Transaction
mutations inside the advice window bump its version; cached advice records
remember the version they were generated from, so a record is stale when its
source_version is behind. Regeneration is serialised with a lease stored on the
same row and claimed with a conditional UPDATE.
"""
import os
import uuid
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    ADVICE_TYPE_BENCHMARKS,
    ADVICE_TYPE_RECOMMENDATIONS,
    ADVICE_TYPES,
    AdviceCacheState,
    Benchmark,
    Recommendation,
)

logger = logging.getLogger(__name__)

ADVICE_WINDOW_DAYS = int(os.getenv("ADVICE_WINDOW_DAYS", "30"))
REFRESH_LEASE_SECONDS = float(os.getenv("ADVICE_REFRESH_LEASE_SECONDS", "120"))


def window_start(now: Optional[datetime] = None) -> datetime:
    """Earliest booked_at that still counts towards advice."""
    return (now or datetime.utcnow()) - timedelta(days=ADVICE_WINDOW_DAYS)


def is_within_window(booked_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if booked_at is None:
        return False
    return booked_at > window_start(now)


def get_or_create_state(db: Session, user_id: str, advice_type: str) -> AdviceCacheState:
    """
    Load the cache state row, creating it on first use.

    Creation commits immediately, so call this before staging other changes.
    A concurrent insert of the same row is resolved by re-reading it.
    """
    state = _find_state(db, user_id, advice_type)
    if state:
        return state

    state = AdviceCacheState(user_id=user_id, advice_type=advice_type, version=0)
    db.add(state)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug(f"Cache state for {user_id}/{advice_type} created concurrently, reloading")
        state = _find_state(db, user_id, advice_type)
    return state


def _find_state(db: Session, user_id: str, advice_type: str) -> Optional[AdviceCacheState]:
    return db.query(AdviceCacheState).filter(
        AdviceCacheState.user_id == user_id,
        AdviceCacheState.advice_type == advice_type,
    ).first()


def ensure_states(db: Session, user_id: str) -> Dict[str, AdviceCacheState]:
    return {advice_type: get_or_create_state(db, user_id, advice_type) for advice_type in ADVICE_TYPES}


def mark_advice_stale(db: Session, user_id: str) -> None:
    """
    Invalidate both advice types for a user.

    The state rows must already exist (see ensure_states). Only stages the
    update; the caller commits together with the transaction mutation.
    """
    for advice_type in ADVICE_TYPES:
        state = _find_state(db, user_id, advice_type)
        if state is None:
            raise LookupError(f"No advice cache state for {user_id}/{advice_type}")
        db.query(AdviceCacheState).filter(AdviceCacheState.id == state.id).update(
            {AdviceCacheState.version: AdviceCacheState.version + 1},
            synchronize_session=False,
        )
        db.expire(state, ["version"])
    logger.info(f"Marked advice stale for user {user_id}")


def claim_refresh(
    db: Session,
    state: AdviceCacheState,
    lease_seconds: float = REFRESH_LEASE_SECONDS,
) -> Optional[str]:
    """
    Try to become the single regenerator for this cache entry.

    Returns a lease token on success, None if another live lease exists.
    The claim is committed immediately so other sessions can see it.
    """
    now = datetime.utcnow()
    token = str(uuid.uuid4())
    expired_before = now - timedelta(seconds=lease_seconds)
    claimed = db.query(AdviceCacheState).filter(
        AdviceCacheState.id == state.id,
        or_(
            AdviceCacheState.refresh_claimed_at.is_(None),
            AdviceCacheState.refresh_claimed_at < expired_before,
        ),
    ).update(
        {
            AdviceCacheState.refresh_claimed_at: now,
            AdviceCacheState.refresh_token: token,
        },
        synchronize_session=False,
    )
    db.commit()
    if claimed != 1:
        logger.info(f"Refresh of {state.advice_type} for user {state.user_id} already in progress")
        return None
    return token


def release_refresh(db: Session, state: AdviceCacheState, token: str) -> None:
    """Drop the lease if we still hold it. Flushes only; the caller commits."""
    db.query(AdviceCacheState).filter(
        AdviceCacheState.id == state.id,
        AdviceCacheState.refresh_token == token,
    ).update(
        {
            AdviceCacheState.refresh_claimed_at: None,
            AdviceCacheState.refresh_token: None,
        },
        synchronize_session=False,
    )


def current_version(db: Session, state: AdviceCacheState) -> int:
    db.refresh(state)
    return state.version or 0


def get_staleness(db: Session, user_id: str) -> Dict[str, bool]:
    """
    Report whether each advice type would be regenerated on the next read.
    Missing records count as stale.
    """
    records = {
        ADVICE_TYPE_RECOMMENDATIONS: db.query(Recommendation).filter(Recommendation.user_id == user_id).first(),
        ADVICE_TYPE_BENCHMARKS: db.query(Benchmark).filter(Benchmark.user_id == user_id).first(),
    }
    staleness = {}
    for advice_type, record in records.items():
        state = _find_state(db, user_id, advice_type)
        if record is None:
            staleness[advice_type] = True
        elif state is None:
            staleness[advice_type] = False
        else:
            staleness[advice_type] = not state.is_fresh(record.source_version)
    return staleness
