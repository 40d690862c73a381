import logging
import math
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session


logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class LedgerError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class Expired(LedgerError):
    status_code = status.HTTP_410_GONE


class Unauthenticated(LedgerError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Please sign in to continue"):
        super().__init__(message)


class RateLimited(LedgerError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, reset_in_ms: int):
        self.wait_seconds = max(1, math.ceil(reset_in_ms / 1000))
        super().__init__(f"Too many attempts. Please wait {self.wait_seconds} seconds.")


@contextmanager
def storage_errors(message: str, session: Optional[Session] = None) -> Iterator[None]:
    """Convert persistence failures into a generic, user-safe 500."""
    try:
        yield
    except SQLAlchemyError:
        logger.exception("Persistence failure: %s", message)
        if session is not None:
            session.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=message,
        )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    def _ledger_error(request: Request, exc: LedgerError):
        headers = {}
        if isinstance(exc, Unauthenticated):
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RateLimited):
            headers["Retry-After"] = str(exc.wait_seconds)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
            headers=headers,
        )

    @app.exception_handler(SQLAlchemyError)
    def _storage_error(request: Request, exc: SQLAlchemyError):
        logger.error("Unhandled persistence failure on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": GENERIC_ERROR_MESSAGE},
        )
