"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

import logging
import secrets
import uuid

from fastapi import Header, HTTPException

from evidence_engine.config import get_settings
from evidence_engine.db.session import get_db  # re-export

__all__ = ["get_db", "parse_uuid_or_422", "require_internal_token"]

logger = logging.getLogger(__name__)


def require_internal_token(x_internal_token: str = Header(...)) -> None:
    """Validate the internal job token from the request header.

    Uses constant-time comparison to prevent timing attacks.
    Raises 403 if the token is empty or does not match the configured value.
    """
    expected = get_settings().internal_job_token
    if not expected or not secrets.compare_digest(x_internal_token, expected):
        logger.warning("Internal endpoint auth failed: invalid or missing token")
        raise HTTPException(status_code=403, detail="Invalid internal token")


def parse_uuid_or_422(value: str, param_name: str) -> uuid.UUID:
    """Parse value as a UUID; raise HTTPException 422 if it is not one."""
    try:
        return uuid.UUID(value.strip())
    except (ValueError, TypeError, AttributeError):
        raise HTTPException(
            status_code=422,
            detail=f"Invalid {param_name}: must be a valid UUID",
        ) from None
