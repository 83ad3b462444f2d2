"""Subscriber credential verification (JWT issued by the user service)."""
from typing import Any, Dict, Optional
import jwt
import structlog
from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from ..config import get_settings
from ..errors import InvalidCredentialError, MissingCredentialError

log = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: Optional[str], secret: Optional[str] = None, algorithm: Optional[str] = None) -> Dict[str, Any]:
    """
    Verify a JWT and return its claims.

    Args:
        token: Raw JWT string (may be None or empty)
        secret: Signing secret (defaults to settings.JWT_SECRET)
        algorithm: Signing algorithm (defaults to settings.JWT_ALGORITHM)

    Returns:
        The decoded and verified claims

    Raises:
        MissingCredentialError: If no token was supplied
        InvalidCredentialError: If the token fails verification
    """
    if not token or not token.strip():
        raise MissingCredentialError("Missing token")

    settings = get_settings()
    try:
        return jwt.decode(
            token.strip(),
            secret or settings.JWT_SECRET,
            algorithms=[algorithm or settings.JWT_ALGORITHM],
        )
    except jwt.PyJWTError as e:
        raise InvalidCredentialError(f"Invalid token: {e}") from e


def identity_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    """User id from the claims; the user service signs {id, email}."""
    for name in ("id", "sub", "email"):
        if claims.get(name) is not None:
            return str(claims[name])
    return None


async def require_bearer(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Dict[str, Any]:
    """
    Dependency to verify the bearer token on streamed-response requests.

    Returns:
        Verified claims

    Raises:
        HTTPException: 401 if the token is missing, 403 if it is invalid
    """
    token = credentials.credentials if credentials else None
    try:
        claims = verify_token(token)
    except MissingCredentialError:
        log.warning("auth.failed", reason="missing_token")
        raise HTTPException(
            status_code=401,
            detail="Missing token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except InvalidCredentialError as e:
        log.warning("auth.failed", reason="invalid_token", error=str(e))
        raise HTTPException(
            status_code=403,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    log.debug("auth.success", identity=identity_from_claims(claims))
    return claims
