"""Public read-only share links for a property's report.

A property holds at most one token. Expiry is checked when the token is
resolved; an expired token stays stored (and the owner still sees the property
as shared) until it is revoked or regenerated.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from ..core.clock import as_utc, utcnow
from ..core.errors import Expired, NotFound
from ..core.logs import log_security_event
from ..models.property import Property
from ..models.share_visit import ShareVisit
from ..models.transaction import TransactionRead
from .ledger import IdLike, get_owned_property, list_transactions
from .live import SHARE_CHANGED, ChangeEvent, ChangeFeed


logger = logging.getLogger(__name__)

SHARE_TOKEN_TTL = timedelta(days=7)
VISIT_DEDUP_WINDOW = timedelta(hours=1)

EXPIRED_MESSAGE = "This share link has expired. Please request a new link from the owner."


class SharedProperty(SQLModel):
    id: uuid.UUID
    name: str


class SharedReportData(SQLModel):
    property: SharedProperty
    transactions: List[TransactionRead]


class ShareStatus(SQLModel):
    is_shared: bool
    share_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = False
    visit_count: int = 0


def _now(now: Optional[datetime]) -> datetime:
    return as_utc(now) if now is not None else utcnow()


def is_expired(prop: Property, now: Optional[datetime] = None) -> bool:
    expires_at = as_utc(prop.share_token_expires_at)
    return prop.is_shared and expires_at is not None and _now(now) > expires_at


def generate(
    session: Session,
    property_id: IdLike,
    owner_id: uuid.UUID,
    feed: Optional[ChangeFeed] = None,
    now: Optional[datetime] = None,
) -> Property:
    """Issue a fresh token for an owned property, replacing any previous one."""
    prop = get_owned_property(session, property_id, owner_id)

    prop.share_token = str(uuid.uuid4())
    prop.share_token_expires_at = _now(now) + SHARE_TOKEN_TTL
    session.add(prop)
    session.commit()
    session.refresh(prop)

    log_security_event("share.generated", user_id=owner_id, property_id=prop.id)
    if feed is not None:
        feed.publish(ChangeEvent(SHARE_CHANGED, prop.id))
    return prop


def revoke(
    session: Session,
    property_id: IdLike,
    owner_id: uuid.UUID,
    feed: Optional[ChangeFeed] = None,
) -> Property:
    prop = get_owned_property(session, property_id, owner_id)
    was_shared = prop.is_shared

    prop.share_token = None
    prop.share_token_expires_at = None
    session.add(prop)
    session.commit()
    session.refresh(prop)

    if was_shared:
        log_security_event("share.revoked", user_id=owner_id, property_id=prop.id)
        if feed is not None:
            feed.publish(ChangeEvent(SHARE_CHANGED, prop.id))
    return prop


def find_active(session: Session, token: str, now: Optional[datetime] = None) -> Property:
    """Look up the property behind a public token without side effects."""
    try:
        uuid.UUID(str(token))
    except (TypeError, ValueError):
        raise NotFound("Invalid share link")

    prop = session.exec(select(Property).where(Property.share_token == str(token))).first()
    if prop is None:
        raise NotFound("Report not found or link has been revoked")

    if is_expired(prop, now):
        raise Expired(EXPIRED_MESSAGE)
    return prop


def resolve(
    session: Session,
    token: str,
    now: Optional[datetime] = None,
    record: bool = True,
    ip: Optional[str] = None,
) -> SharedReportData:
    prop = find_active(session, token, now)
    transactions = list_transactions(session, prop.id)
    data = SharedReportData(
        property=SharedProperty(id=prop.id, name=prop.name),
        transactions=[TransactionRead.model_validate(t, from_attributes=True) for t in transactions],
    )

    if record:
        log_security_event("share.accessed", property_id=prop.id, ip=ip)
        try:
            record_visit(session, prop.id, now)
        except SQLAlchemyError:
            # Visit analytics never block the report itself
            logger.exception("Failed to log visit for property %s", prop.id)
            session.rollback()
    return data


def record_visit(session: Session, property_id: uuid.UUID, now: Optional[datetime] = None) -> bool:
    """Count at most one visit per property per trailing hour.

    Count-then-insert is not atomic; two concurrent first visits can both be
    recorded.
    """
    now = _now(now)
    recent = session.exec(
        select(func.count())
        .select_from(ShareVisit)
        .where(
            ShareVisit.property_id == property_id,
            ShareVisit.visited_at >= now - VISIT_DEDUP_WINDOW,
        )
    ).one()
    if recent:
        return False

    session.add(ShareVisit(id=uuid.uuid4(), property_id=property_id, visited_at=now))
    session.commit()
    return True


def visit_count(session: Session, property_id: IdLike, owner_id: uuid.UUID) -> int:
    prop = get_owned_property(session, property_id, owner_id)
    return _total_visits(session, prop.id)


def _total_visits(session: Session, property_id: uuid.UUID) -> int:
    return session.exec(
        select(func.count())
        .select_from(ShareVisit)
        .where(ShareVisit.property_id == property_id)
    ).one()


def status(
    session: Session,
    property_id: IdLike,
    owner_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> ShareStatus:
    prop = get_owned_property(session, property_id, owner_id)
    expires_at = as_utc(prop.share_token_expires_at)
    return ShareStatus(
        # Expired-but-unrevoked tokens still count as shared
        is_shared=prop.is_shared,
        share_token=prop.share_token,
        expires_at=expires_at,
        is_expired=is_expired(prop, now),
        visit_count=_total_visits(session, prop.id),
    )
