import datetime as dt
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlmodel import Session, SQLModel

from ..core.errors import storage_errors
from ..core.identity import IdentityUser
from ..core.security import get_current_user
from ..database import get_session
from ..deps import get_change_feed
from ..models.transaction import TransactionRead
from ..services import ledger
from ..services.live import ChangeFeed


router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)


class TransactionItem(SQLModel):
    date: Optional[dt.date] = None
    description: Optional[str] = None
    amount: Decimal
    type: str


class TransactionCreate(TransactionItem):
    property_id: str


class BulkTransactionCreate(SQLModel):
    property_id: str
    transactions: List[TransactionItem]


def _validated(item: TransactionItem):
    return ledger.validate_transaction(item.date, item.description, item.amount, item.type)


@router.post(
    "",
    response_model=TransactionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_transaction(
    payload: TransactionCreate,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Record one income or expense against an owned property."""
    row = _validated(payload)
    with storage_errors("Unable to save transaction. Please try again.", session):
        created = ledger.create_transactions(session, current_user.id, payload.property_id, [row], feed)
    return created[0]


@router.post(
    "/bulk",
    response_model=List[TransactionRead],
    status_code=status.HTTP_201_CREATED,
)
def create_transactions_bulk(
    payload: BulkTransactionCreate,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """All rows are validated first; nothing is saved if any row is invalid."""
    rows = [_validated(item) for item in payload.transactions]
    with storage_errors("Unable to save transactions. Please try again.", session):
        return ledger.create_transactions(session, current_user.id, payload.property_id, rows, feed)


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_transaction(
    transaction_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    with storage_errors("Unable to delete transaction. Please try again.", session):
        ledger.delete_transaction(session, transaction_id, current_user.id, feed)
    return None
