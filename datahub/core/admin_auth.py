"""API key check for privileged engine operations (rebuild, refresh, clear)."""

import logging
import secrets

from fastapi import Header, HTTPException

from datahub.core.config import get_settings

logger = logging.getLogger(__name__)


async def verify_admin_api_key(x_admin_api_key: str = Header(...)) -> None:
    """
    Verify the admin API key from request header.

    Uses constant-time comparison and returns the same 401 whether the key
    is missing from config or simply wrong.
    """
    settings = get_settings()

    if not settings.admin_api_key:
        logger.error("Admin API key not configured - rejecting request")
        raise HTTPException(status_code=401, detail="Authentication failed")

    if not secrets.compare_digest(x_admin_api_key, settings.admin_api_key):
        raise HTTPException(status_code=401, detail="Authentication failed")
