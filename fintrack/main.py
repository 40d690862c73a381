from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .core.errors import register_error_handlers
from .core.logs import configure_logging
from .core.rate_limit import RateLimiter
from .database import init_db
from .routers import auth as auth_router
from .routers import pages as pages_router
from .routers import properties as properties_router
from .routers import share as share_router
from .routers import transactions as transactions_router
from .services.live import ChangeFeed


def create_app(
    rate_limiter: Optional[RateLimiter] = None,
    change_feed: Optional[ChangeFeed] = None,
) -> FastAPI:
    configure_logging()

    app = FastAPI(title="FinTrack – Property Ledger", version="0.1.0")
    app.state.rate_limiter = rate_limiter or RateLimiter()
    app.state.change_feed = change_feed or ChangeFeed()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    @app.on_event("startup")
    def on_startup():
        init_db()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(auth_router.router)
    app.include_router(pages_router.router)
    app.include_router(properties_router.router)
    app.include_router(transactions_router.router)
    app.include_router(share_router.router)

    return app


app = create_app()
