import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Field, Session, SQLModel

from ..core import rate_limit
from ..core.clock import as_utc
from ..core.errors import storage_errors
from ..core.identity import IdentityUser
from ..core.rate_limit import RateLimiter
from ..core.security import get_current_user
from ..database import get_session
from ..deps import enforce_rate_limit, get_change_feed, get_rate_limiter
from ..models.transaction import TransactionRead
from ..services import ledger, share
from ..services.export import export_filename, render_report_png
from ..services.live import ChangeFeed
from ..services.report import MonthlyReport, build_monthly_report, current_month


router = APIRouter(
    prefix="/properties",
    tags=["properties"],
)


# ─────────────────────────────
#   SCHEMAS
# ─────────────────────────────

class PropertyCreate(SQLModel):
    name: str = Field(max_length=200)


class PropertyRead(SQLModel):
    id: uuid.UUID
    name: str
    is_shared: bool
    share_token_expires_at: Optional[datetime] = None
    created_at: datetime


class ShareLinkRead(SQLModel):
    share_token: str
    expires_at: datetime


class VisitCountRead(SQLModel):
    count: int


def _property_read(prop) -> PropertyRead:
    return PropertyRead(
        id=prop.id,
        name=prop.name,
        is_shared=prop.is_shared,
        share_token_expires_at=as_utc(prop.share_token_expires_at),
        created_at=as_utc(prop.created_at),
    )


# ─────────────────────────────
#   ENDPOINTS
# ─────────────────────────────

@router.get(
    "",
    response_model=List[PropertyRead],
)
def list_properties(
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to load properties. Please try again.", session):
        return [_property_read(p) for p in ledger.list_properties(session, current_user.id)]


@router.post(
    "",
    response_model=PropertyRead,
    status_code=status.HTTP_201_CREATED,
)
def create_property(
    payload: PropertyCreate,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to create property. Please try again.", session):
        return _property_read(ledger.create_property(session, current_user.id, payload.name))


@router.delete(
    "/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_property(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Delete a property together with its transactions and visit log."""
    with storage_errors("Unable to delete property. Please try again.", session):
        ledger.delete_property(session, property_id, current_user.id, feed)
    return None


@router.get(
    "/{property_id}/transactions",
    response_model=List[TransactionRead],
)
def list_transactions(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to load transactions. Please try again.", session):
        prop = ledger.get_owned_property(session, property_id, current_user.id)
        return ledger.list_transactions(session, prop.id)


@router.get(
    "/{property_id}/report",
    response_model=MonthlyReport,
)
def property_report(
    property_id: str,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to load transactions. Please try again.", session):
        prop = ledger.get_owned_property(session, property_id, current_user.id)
        transactions = ledger.list_transactions(session, prop.id)
    return build_monthly_report(transactions, month or current_month())


@router.get(
    "/{property_id}/report.png",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
def property_report_png(
    property_id: str,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    month = month or current_month()
    with storage_errors("Unable to load transactions. Please try again.", session):
        prop = ledger.get_owned_property(session, property_id, current_user.id)
        transactions = ledger.list_transactions(session, prop.id)
    report = build_monthly_report(transactions, month)
    return Response(
        content=render_report_png(prop.name, report),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(prop.name, month)}"'},
    )


# ─────────────────────────────
#   SHARE LINKS (owner side)
# ─────────────────────────────

@router.post(
    "/{property_id}/share",
    response_model=ShareLinkRead,
    status_code=status.HTTP_201_CREATED,
)
def generate_share_link(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
    feed: ChangeFeed = Depends(get_change_feed),
):
    enforce_rate_limit(limiter, f"share:{current_user.id}", rate_limit.SHARE)
    with storage_errors("Unable to generate share link. Please try again.", session):
        prop = share.generate(session, property_id, current_user.id, feed)
    return ShareLinkRead(share_token=prop.share_token, expires_at=as_utc(prop.share_token_expires_at))


@router.delete(
    "/{property_id}/share",
    status_code=status.HTTP_204_NO_CONTENT,
)
def revoke_share_link(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
    feed: ChangeFeed = Depends(get_change_feed),
):
    with storage_errors("Unable to revoke share link. Please try again.", session):
        share.revoke(session, property_id, current_user.id, feed)
    return None


@router.get(
    "/{property_id}/share",
    response_model=share.ShareStatus,
)
def share_status(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to get share status.", session):
        return share.status(session, property_id, current_user.id)


@router.get(
    "/{property_id}/share/visits",
    response_model=VisitCountRead,
)
def share_visits(
    property_id: str,
    session: Session = Depends(get_session),
    current_user: IdentityUser = Depends(get_current_user),
):
    with storage_errors("Unable to get visit count.", session):
        return VisitCountRead(count=share.visit_count(session, property_id, current_user.id))
