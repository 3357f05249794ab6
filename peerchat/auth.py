"""
Bearer token verification for WebSocket handshakes and HTTP routes.

Tokens are issued by the auth service and carry the claims
id, role, ageBracket and consentMinorOk.
"""

from typing import Any, Mapping, Optional

import jwt

from .config import get_settings
from .logger import get_logger, log_security_event
from .models import UserIdentity

logger = get_logger()


def extract_bearer_token(query_params: Mapping[str, str], headers: Mapping[str, str]) -> Optional[str]:
    """
    Read the token from the `token` query parameter or the Authorization header

    Browsers cannot set headers on a WebSocket handshake, so the query
    parameter is checked first.
    """
    token = query_params.get("token")
    if token:
        return token

    authorization = headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def verify_token(token: Optional[str]) -> Optional[UserIdentity]:
    """
    Decode and verify a bearer token

    Args:
        token: Encoded JWT

    Returns:
        UserIdentity for a valid token carrying an id claim, None otherwise
    """
    if not token:
        return None

    settings = get_settings()
    try:
        claims: Any = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        log_security_event("token_rejected", {"error": type(e).__name__})
        return None

    user_id = claims.get("id")
    if not user_id:
        log_security_event("token_missing_id", {"claims": sorted(claims)})
        return None

    return UserIdentity(
        user_id=str(user_id),
        role=str(claims.get("role") or ""),
        age_bracket=claims.get("ageBracket"),
        consent_minor_ok=claims.get("consentMinorOk") is True,
    )
