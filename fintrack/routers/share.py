import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Optional, Tuple

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from ..core import rate_limit
from ..core.clock import as_utc, utcnow
from ..core.errors import GENERIC_ERROR_MESSAGE, Expired, LedgerError, ValidationError, storage_errors
from ..core.rate_limit import RateLimiter
from ..database import get_session, get_session_factory
from ..deps import client_address, enforce_rate_limit, get_change_feed, get_rate_limiter
from ..services import share
from ..services.export import export_filename, render_report_png
from ..services.live import RECONNECT_POLICY, SHARE_CHANGED, ChangeFeed, SharedReportView, Subscription
from ..services.report import MonthlyReport, build_monthly_report, current_month, parse_month


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/share",
    tags=["share"],
)

# Application-defined close codes mirroring the HTTP statuses
CLOSE_NOT_FOUND = 4404
CLOSE_EXPIRED = 4410
CLOSE_INTERNAL_ERROR = 1011


def _public_read(request: Request, limiter: RateLimiter) -> None:
    enforce_rate_limit(limiter, f"public:{client_address(request)}", rate_limit.API)


@router.get(
    "/{token}",
    response_model=share.SharedReportData,
)
def shared_report(
    token: str,
    request: Request,
    session: Session = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Public, read-only view of a shared property. Counts the visit."""
    _public_read(request, limiter)
    with storage_errors("Unable to load report. Please try again.", session):
        return share.resolve(session, token, ip=client_address(request))


@router.get(
    "/{token}/report",
    response_model=MonthlyReport,
)
def shared_monthly_report(
    token: str,
    request: Request,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    _public_read(request, limiter)
    with storage_errors("Unable to load report. Please try again.", session):
        data = share.resolve(session, token, record=False)
    return build_monthly_report(data.transactions, month or current_month())


@router.get(
    "/{token}/report.png",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}},
)
def shared_report_png(
    token: str,
    request: Request,
    month: Optional[str] = None,
    session: Session = Depends(get_session),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    _public_read(request, limiter)
    month = month or current_month()
    with storage_errors("Unable to load report. Please try again.", session):
        data = share.resolve(session, token, record=False)
    report = build_monthly_report(data.transactions, month)
    name = data.property.name
    return Response(
        content=render_report_png(name, report),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(name, month)}"'},
    )


# ─────────────────────────────
#   LIVE UPDATES
# ─────────────────────────────

def _lookup_share(open_session: Callable[[], Session], token: str) -> Tuple[uuid.UUID, Optional[datetime]]:
    with open_session() as session:
        prop = share.find_active(session, token)
        return prop.id, as_utc(prop.share_token_expires_at)


def _load_share(open_session: Callable[[], Session], token: str) -> share.SharedReportData:
    with open_session() as session:
        return share.resolve(session, token, record=False)


def _report_json(view: SharedReportView):
    return view.report().model_dump(mode="json")


async def _close_with_error(websocket: WebSocket, detail: str, code: int) -> None:
    await websocket.send_json({"type": "error", "detail": detail})
    await websocket.close(code=code)


async def _next_event(sub: Subscription, expires_at: Optional[datetime]):
    if expires_at is None:
        return await sub.get()
    remaining = (expires_at - utcnow()).total_seconds()
    if remaining <= 0:
        raise asyncio.TimeoutError
    return await asyncio.wait_for(sub.get(), timeout=remaining)


async def _pump(
    websocket: WebSocket,
    sub: Subscription,
    view: SharedReportView,
    expires_at: Optional[datetime],
) -> None:
    while True:
        try:
            event = await _next_event(sub, expires_at)
        except asyncio.TimeoutError:
            await _close_with_error(websocket, share.EXPIRED_MESSAGE, CLOSE_EXPIRED)
            return
        if event.type == SHARE_CHANGED:
            await websocket.send_json({"type": "share_changed", "detail": "This share link is no longer valid."})
            await websocket.close(code=CLOSE_NOT_FOUND)
            return
        if view.apply(event):
            await websocket.send_json({"type": "change", **event.as_message(), "report": _report_json(view)})
        if sub.stale:
            # Events were dropped; only a full reload can recover
            await websocket.send_json({"type": "stale", "detail": "Live updates fell behind. Please refresh."})
            sub.stale = False


async def _read_months(websocket: WebSocket, view: SharedReportView) -> None:
    while True:
        try:
            message = await websocket.receive_json()
        except ValueError:
            await websocket.send_json({"type": "error", "detail": "Messages must be JSON"})
            continue
        new_month = message.get("month") if isinstance(message, dict) else None
        if not new_month:
            continue
        try:
            parse_month(new_month)
        except ValidationError as e:
            await websocket.send_json({"type": "error", "detail": e.message})
            continue
        view.month = new_month
        await websocket.send_json({"type": "report", "report": _report_json(view)})


@router.websocket("/{token}/live")
async def shared_report_live(
    websocket: WebSocket,
    token: str,
    month: Optional[str] = None,
    open_session: Callable[[], Session] = Depends(get_session_factory),
    feed: ChangeFeed = Depends(get_change_feed),
):
    await websocket.accept()
    try:
        month = month or current_month()
        parse_month(month)
        property_id, expires_at = await run_in_threadpool(_lookup_share, open_session, token)
    except LedgerError as e:
        await _close_with_error(websocket, e.message, CLOSE_EXPIRED if isinstance(e, Expired) else CLOSE_NOT_FOUND)
        return
    except SQLAlchemyError:
        logger.exception("Failed to open live view")
        await _close_with_error(websocket, GENERIC_ERROR_MESSAGE, CLOSE_INTERNAL_ERROR)
        return

    # Subscribe before reading the snapshot so no committed change is missed
    with feed.subscribe(property_id) as sub:
        try:
            data = await run_in_threadpool(_load_share, open_session, token)
        except LedgerError as e:
            await _close_with_error(websocket, e.message, CLOSE_EXPIRED if isinstance(e, Expired) else CLOSE_NOT_FOUND)
            return
        except SQLAlchemyError:
            logger.exception("Failed to load live view for property %s", property_id)
            await _close_with_error(websocket, GENERIC_ERROR_MESSAGE, CLOSE_INTERNAL_ERROR)
            return

        view = SharedReportView(month=month, transactions=list(data.transactions))
        await websocket.send_json(
            {
                "type": "subscribed",
                "property": data.property.model_dump(mode="json"),
                "reconnect": RECONNECT_POLICY,
                "report": _report_json(view),
            }
        )

        tasks = {
            asyncio.create_task(_pump(websocket, sub, view, expires_at)),
            asyncio.create_task(_read_months(websocket, view)),
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        failed = False
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if isinstance(exc, WebSocketDisconnect):
                logger.debug("Live viewer for property %s disconnected", property_id)
            elif exc is not None:
                failed = True
                logger.error("Live view for property %s failed", property_id, exc_info=exc)

        if failed and websocket.application_state == WebSocketState.CONNECTED and (
            websocket.client_state == WebSocketState.CONNECTED
        ):
            await websocket.close(code=CLOSE_INTERNAL_ERROR)
