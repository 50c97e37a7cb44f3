"""
PURPOSE: API key authentication dependency for tradehook routes.

Inspection and manual broker endpoints are protected by the shared X-API-Key
header. The Chartink webhook is authenticated separately by its strategy key
and the optional global webhook token.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from tradehook.config.settings import settings
from tradehook.utils.logger import get_logger


logger = get_logger(__name__)


async def api_key_auth(x_api_key: Optional[str] = Header(None)) -> str:
    """
    PURPOSE: FastAPI dependency to validate API key from X-API-Key header.

    CALLED BY: API-key-authenticated routes via Depends(api_key_auth)

    Args:
        x_api_key: API key from X-API-Key header

    Returns:
        str: "api-key" if validation succeeds

    Raises:
        HTTPException: 401 if the header is missing, 403 if the key is wrong
    """
    if not x_api_key:
        logger.warning("missing_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
        )

    if x_api_key != settings.API_KEY:
        logger.warning("invalid_api_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return "api-key"
