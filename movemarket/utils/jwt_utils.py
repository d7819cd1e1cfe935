import os
import time
import logging
from typing import Optional, Dict, Any

import jwt

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TTL_SECONDS = 60 * 60 * 24 * 7


def _secret() -> str:
    return os.getenv("SECRET_KEY") or "dev-secret-change-me"


def create_access_token(user_id: int, ttl_seconds: int = ACCESS_TTL_SECONDS) -> str:
    """Mint a token shaped like the ones the identity provider issues.

    Production never calls this; it exists for tests and local seeding.
    """
    issued = int(time.time())
    claims = {"sub": str(user_id), "type": "access", "iat": issued, "exp": issued + int(ttl_seconds)}
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM], options={"require": ["sub", "exp"]})
    except jwt.PyJWTError as exc:
        logger.info("jwt_rejected reason=%s", type(exc).__name__)
        return None
    if claims.get("type", "access") != "access":
        logger.info("jwt_rejected reason=wrong_type type=%s", claims.get("type"))
        return None
    return claims


def get_bearer_token(auth_header: str) -> Optional[str]:
    scheme, _, token = (auth_header or "").strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token
