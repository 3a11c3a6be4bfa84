from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.database import get_db
from app.db_helpers import get_user_by_id, get_user_id
from app.models import Transaction
from app.schemas import TransactionCreate, TransactionResponse, TransactionUpdate
from app.services.errors import NotFoundError
from app.services.llm_client import CompletionClient, get_completion_client
from app.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(transaction: Transaction) -> TransactionResponse:
    response = TransactionResponse.model_validate(transaction)
    response.category_name = transaction.category.name if transaction.category else None
    return response


@router.get("/", response_model=List[TransactionResponse])
def list_transactions(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """List the current user's transactions, newest first."""
    user_id = get_user_id(user_id)
    transactions = TransactionService(db, client).list_transactions(user_id)
    return [_to_response(t) for t in transactions]


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    user_id = get_user_id(user_id)
    try:
        return _to_response(TransactionService(db, client).get_transaction(transaction_id, user_id))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")


@router.post("/", response_model=TransactionResponse, status_code=201)
def create_transaction(
    transaction: TransactionCreate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Record a transaction and attribute its carbon footprint."""
    user_id = get_user_id(user_id)
    try:
        user = get_user_by_id(db, user_id)
        created = TransactionService(db, client).create_transaction(
            user_email=user.email,
            category_id=transaction.category_id,
            amount=transaction.amount,
            booked_at=transaction.booked_at,
            transaction_type=transaction.transaction_type,
            description=transaction.description,
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_response(created)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: UUID,
    updates: TransactionUpdate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    """Update a transaction. Its footprint is re-attributed when the description changes."""
    user_id = get_user_id(user_id)
    try:
        updated = TransactionService(db, client).update_transaction(
            transaction_id,
            user_id,
            updates.model_dump(exclude_unset=True),
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_response(updated)


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
):
    user_id = get_user_id(user_id)
    try:
        TransactionService(db, client).delete_transaction(transaction_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return None
