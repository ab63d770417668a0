"""Bearer API key check and the shared rate limiter for merchant routes."""

import os
import secrets
import logging

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()

# Applied per route; gateway webhooks are not limited
limiter = Limiter(key_func=get_remote_address)


def _matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> str:
    """
    Raises:
        HTTPException: 500 when API_KEY is unset, 401 when the bearer token
            differs from it.
    """
    expected = os.getenv("API_KEY")
    if not expected:
        logger.error("API_KEY is not set; rejecting payment session request")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not _matches(credentials.credentials, expected):
        logger.warning(f"Invalid API key presented ({credentials.scheme} scheme)")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
