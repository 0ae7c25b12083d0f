"""
API key authentication for the FastAPI API.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api.config import config

logger = structlog.get_logger(__name__)

# Security scheme; missing headers are reported by verify_api_key itself
security = HTTPBearer(auto_error=False)


def mask_key(api_key: str) -> str:
    return api_key[:6] + "..." if api_key else ""


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    """
    Verify the bearer API key against the configured keys.

    Authentication is disabled when no keys are configured.

    Args:
        credentials: HTTP authorization credentials

    Returns:
        API key if valid, None when authentication is disabled

    Raises:
        HTTPException: If the key is missing or invalid
    """
    valid_api_keys = config.get_api_keys()
    if not valid_api_keys:
        return None

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    api_key = credentials.credentials
    if api_key not in valid_api_keys:
        logger.warning("Invalid API key attempted", api_key=mask_key(api_key))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return api_key
