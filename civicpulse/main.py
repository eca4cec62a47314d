from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .infrastructure import models
from .infrastructure.database import engine
from .core.config import settings, DEFAULT_JWT_SECRET
from .domain.models import SessionContext
from .domain.services.auth_service import auth_service, SessionEvent

models.Base.metadata.create_all(bind=engine)

from .api import auth, reports, comments, follows, notifications, badges, users

logger = logging.getLogger(__name__)


def validate_config():
    """Validate critical configuration settings on startup."""
    if settings.is_production and settings.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "SECURITY ERROR: JWT_SECRET_KEY must be changed from default in production! "
            "Set a secure random string via environment variable."
        )

    if len(settings.JWT_SECRET_KEY) < 32:
        raise RuntimeError(
            f"SECURITY ERROR: JWT_SECRET_KEY must be at least 32 characters "
            f"(current: {len(settings.JWT_SECRET_KEY)} chars)"
        )

    if settings.is_production:
        localhost_origins = [o for o in settings.BACKEND_CORS_ORIGINS if "localhost" in o]
        if localhost_origins:
            logger.warning(
                f"WARNING: CORS origins contain localhost URLs in production: {localhost_origins}. "
                "Consider removing localhost from BACKEND_CORS_ORIGINS env var."
            )

    if not (settings.SUPABASE_URL and settings.SUPABASE_SERVICE_KEY):
        logger.warning("Supabase storage not configured - report photos get mock URLs")

    logger.info(f"Config validation passed. Production mode: {settings.is_production}")


def log_session_change(event: SessionEvent, session: Optional[SessionContext]) -> None:
    user = session.user_id if session else "unknown user"
    logger.info(f"Session {event.value.lower()} for {user}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events for startup and shutdown."""
    logger.info("Starting CivicPulse API...")
    validate_config()
    unsubscribe = auth_service.subscribe(log_session_change)

    yield

    unsubscribe()
    logger.info("Shutting down CivicPulse API...")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["authentication"])
app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports", tags=["reports"])
app.include_router(comments.router, prefix=settings.API_V1_STR, tags=["comments"])
app.include_router(follows.router, prefix=settings.API_V1_STR, tags=["follows"])
app.include_router(notifications.router, prefix=f"{settings.API_V1_STR}/notifications", tags=["notifications"])
app.include_router(badges.router, prefix=f"{settings.API_V1_STR}/badges", tags=["badges"])
app.include_router(users.router, prefix=f"{settings.API_V1_STR}/users", tags=["users"])
app.include_router(users.admin_router, prefix=f"{settings.API_V1_STR}/admin", tags=["admin"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}
