from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session, SQLModel

from ..core.errors import storage_errors
from ..core.identity import IdentityUser
from ..core.security import get_optional_user
from ..database import get_session
from ..services import ledger, share


router = APIRouter(tags=["pages"])


class DashboardProperty(SQLModel):
    property_id: str
    name: str
    share_status: share.ShareStatus


class DashboardRead(SQLModel):
    email: str
    properties: List[DashboardProperty]


def _redirect(path: str) -> RedirectResponse:
    return RedirectResponse(path, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/login", response_model=None)
def login_page(current_user: Optional[IdentityUser] = Depends(get_optional_user)):
    if current_user is not None:
        return _redirect("/dashboard")
    return {"detail": "Please sign in to continue", "login_url": "/auth/login"}


@router.get("/dashboard", response_model=None)
def dashboard(
    session: Session = Depends(get_session),
    current_user: Optional[IdentityUser] = Depends(get_optional_user),
):
    """Overview of the signed-in user's properties and their share state."""
    if current_user is None:
        return _redirect("/login")

    with storage_errors("Unable to load properties. Please try again.", session):
        items = [
            DashboardProperty(
                property_id=str(p.id),
                name=p.name,
                share_status=share.status(session, p.id, current_user.id),
            )
            for p in ledger.list_properties(session, current_user.id)
        ]
    return DashboardRead(email=current_user.email, properties=items)
