"""
Dependencies for database sessions, shared services and admin authentication.
"""
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import recovery.config as config
import recovery.database as database
from recovery.parsers.registry import ParserRegistry
from recovery.services.webhook_intake import WebhookIntake
from recovery.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = database.SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def get_webhook_intake(request: Request) -> WebhookIntake:
    intake = getattr(request.app.state, "webhook_intake", None)
    if intake is None:
        logger.error("Webhook intake requested before application startup completed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook intake not initialized",
        )
    return intake


def get_parser_registry(request: Request) -> ParserRegistry:
    registry = getattr(request.app.state, "parser_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Parser registry not initialized",
        )
    return registry


def require_admin_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """
    Guard for the lead administration endpoints.

    Compares the Bearer token with ADMIN_API_TOKEN. When no token is
    configured the check is skipped.

    Raises:
        HTTPException: 401 if the token is missing or does not match
    """
    expected = config.ADMIN_API_TOKEN
    if not expected:
        return None

    provided = credentials.credentials if credentials else None
    if provided != expected:
        logger.warning(
            "Admin authentication failed",
            provided_token_prefix=(provided[:6] + "...") if provided else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return None
