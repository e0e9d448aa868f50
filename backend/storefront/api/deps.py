import logging
from typing import Optional

from fastapi import Header, HTTPException, Request
from jose import JWTError, jwt

from storefront.config import settings
from storefront.services.cart_service import CartIdentity

log = logging.getLogger("storefront.auth")


def _user_from_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        log.info("Invalid or expired token, proceeding as guest")
        return None
    sub = payload.get("sub") or payload.get("userId")
    return str(sub) if sub is not None else None


def optional_identity(
    request: Request, authorization: Optional[str] = Header(None)
) -> Optional[CartIdentity]:
    """
    Bearer token wins; otherwise the session cookie identifies a guest.
    Returns None for a first-time visitor with neither.
    """
    user_id = _user_from_bearer(authorization)
    if user_id:
        return CartIdentity.user(user_id)
    session_id = request.cookies.get(settings.CART_SESSION_COOKIE)
    if session_id:
        return CartIdentity.guest(session_id)
    return None


def require_user(authorization: Optional[str] = Header(None)) -> str:
    user_id = _user_from_bearer(authorization)
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
