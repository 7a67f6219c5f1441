"""
Dependencies for database sessions, settings and the provider client.
"""
from typing import Generator
from fastapi import Depends, Request
from sqlalchemy.orm import Session
from app.config import Settings, load_settings
from app.database import SessionLocal
from app.integrations.apify import ApifyClient
from app.utils import get_logger

logger = get_logger(__name__)

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()

def get_settings(request: Request) -> Settings:
    """Settings injected at startup (``app.state.settings``)."""
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        settings = load_settings()
        request.app.state.settings = settings
    return settings

def get_provider_client(settings: Settings = Depends(get_settings)) -> ApifyClient:
    """Scraping provider client built from the injected settings."""
    return ApifyClient.from_settings(settings)

def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID", "unknown")
