import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ✅ Import All API Routes
from lightfriend.api.routes import (
    admin,
    auth,
    google_calendar,
    health,
    imap,
    lemonsqueezy,
    paddle,
    profile,
    twilio_webhook,
    unipile,
    usage,
    whatsapp,
)
from lightfriend.core import config
from lightfriend.core.context import AppContext
from lightfriend.core.logging_config import setup_logging
from lightfriend.jobs.scheduler import setup_scheduler

logger = logging.getLogger(__name__)


# ============================================
# ✅ LIFESPAN: SCHEDULED JOBS
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if config.SCHEDULER_ENABLED:
        scheduler = setup_scheduler(app.state.context)
        scheduler.start()
        logger.info("Scheduler started")
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        context: Shared services; built from the environment when omitted
    """
    setup_logging(config.LOG_LEVEL)

    app = FastAPI(title="lightfriend", lifespan=lifespan)
    app.state.context = context or AppContext.from_config()

    # ✅ CORS: ONLY THE FRONTEND
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)

    # ============================================
    # ✅ REGISTER ALL ROUTERS
    # ============================================

    app.include_router(auth.router)
    app.include_router(profile.router)
    app.include_router(usage.router)
    app.include_router(lemonsqueezy.router)
    app.include_router(paddle.router)
    app.include_router(unipile.router)
    app.include_router(google_calendar.router)
    app.include_router(whatsapp.router)
    app.include_router(imap.router)
    app.include_router(twilio_webhook.router)
    app.include_router(admin.router)
    app.include_router(health.router)

    return app


app = create_app()
