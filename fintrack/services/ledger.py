import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence, Union

from sqlalchemy import delete
from sqlmodel import Session, select

from ..core.errors import NotFound, ValidationError
from ..core.logs import log_security_event
from ..models.property import Property
from ..models.share_visit import ShareVisit
from ..models.transaction import TRANSACTION_TYPES, Transaction
from .live import DELETE, INSERT, SHARE_CHANGED, ChangeEvent, ChangeFeed, transaction_payload


MAX_BULK_ROWS = 50
MAX_AMOUNT = Decimal("9999999999.99")

IdLike = Union[str, uuid.UUID]


def parse_uuid(value: IdLike, message: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(message)


# ─────────────────────────────
#   PROPERTIES
# ─────────────────────────────

def list_properties(session: Session, user_id: uuid.UUID) -> List[Property]:
    stmt = (
        select(Property)
        .where(Property.user_id == user_id)
        .order_by(Property.created_at.asc())
    )
    return list(session.exec(stmt).all())


def get_owned_property(session: Session, property_id: IdLike, user_id: uuid.UUID) -> Property:
    pid = parse_uuid(property_id, "Invalid property ID")
    prop = session.exec(
        select(Property).where(Property.id == pid, Property.user_id == user_id)
    ).first()
    if prop is None:
        log_security_event("access.denied", user_id=user_id, property_id=pid, reason="property_not_found")
        raise NotFound("Property not found")
    return prop


def create_property(session: Session, user_id: uuid.UUID, name: str) -> Property:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Name must be at least 2 characters")
    if len(name) > 50:
        raise ValidationError("Name must be less than 50 characters")

    prop = Property(id=uuid.uuid4(), name=name, user_id=user_id)
    session.add(prop)
    session.commit()
    session.refresh(prop)

    log_security_event("property.created", user_id=user_id, property_id=prop.id)
    return prop


def delete_property(
    session: Session,
    property_id: IdLike,
    user_id: uuid.UUID,
    feed: Optional[ChangeFeed] = None,
) -> None:
    """Delete an owned property; transactions and visits go with it."""
    prop = get_owned_property(session, property_id, user_id)
    pid = prop.id

    # Children are removed explicitly as well so engines without FK
    # enforcement keep the cascade guarantee
    session.exec(delete(ShareVisit).where(ShareVisit.property_id == pid))
    session.exec(delete(Transaction).where(Transaction.property_id == pid))
    session.exec(delete(Property).where(Property.id == pid))
    session.commit()
    session.expunge_all()

    log_security_event("property.deleted", user_id=user_id, property_id=pid)
    if feed is not None:
        feed.publish(ChangeEvent(SHARE_CHANGED, pid))


# ─────────────────────────────
#   TRANSACTIONS
# ─────────────────────────────

def list_transactions(session: Session, property_id: uuid.UUID) -> List[Transaction]:
    stmt = (
        select(Transaction)
        .where(Transaction.property_id == property_id)
        .order_by(Transaction.date.asc(), Transaction.created_at.asc())
    )
    return list(session.exec(stmt).all())


def validate_transaction(
    txn_date: Optional[date],
    description: Optional[str],
    amount,
    txn_type: Optional[str],
) -> Transaction:
    """Return an unsaved Transaction, or raise with the first problem found."""
    if txn_date is None:
        raise ValidationError("Date is required")

    description = (description or "").strip()
    if len(description) < 3:
        raise ValidationError("Description must be at least 3 characters")
    if len(description) > 100:
        raise ValidationError("Description is too long")

    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    if value > MAX_AMOUNT:
        raise ValidationError("Amount is too large")
    value = value.quantize(Decimal("0.01"))
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")

    if txn_type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be income or expense")

    return Transaction(
        id=uuid.uuid4(),
        date=txn_date,
        description=description,
        amount=value,
        type=txn_type,
    )


def create_transactions(
    session: Session,
    user_id: uuid.UUID,
    property_id: IdLike,
    rows: Sequence[Transaction],
    feed: Optional[ChangeFeed] = None,
) -> List[Transaction]:
    """Insert validated rows for an owned property in one commit."""
    prop = get_owned_property(session, parse_uuid(property_id, "Please select a valid property"), user_id)
    if not rows:
        raise ValidationError("Add at least one transaction")
    if len(rows) > MAX_BULK_ROWS:
        raise ValidationError(f"At most {MAX_BULK_ROWS} transactions can be added at once")

    for txn in rows:
        txn.property_id = prop.id
        session.add(txn)
    session.commit()
    for txn in rows:
        session.refresh(txn)

    if feed is not None:
        for txn in rows:
            feed.publish(ChangeEvent(INSERT, prop.id, new=transaction_payload(txn)))
    return list(rows)


def delete_transaction(
    session: Session,
    transaction_id: IdLike,
    user_id: uuid.UUID,
    feed: Optional[ChangeFeed] = None,
) -> None:
    tid = parse_uuid(transaction_id, "Invalid transaction ID")
    txn = session.exec(
        select(Transaction)
        .join(Property, Property.id == Transaction.property_id)
        .where(Transaction.id == tid, Property.user_id == user_id)
    ).first()
    if txn is None:
        raise NotFound("Transaction not found")

    payload = transaction_payload(txn)
    property_id = txn.property_id
    session.delete(txn)
    session.commit()

    if feed is not None:
        feed.publish(ChangeEvent(DELETE, property_id, old=payload))
