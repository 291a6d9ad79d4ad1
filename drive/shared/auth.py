# drive/shared/auth.py
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import APIKeyCookie

from drive.auth.schemas import Identity
from drive.auth.sessions import SessionManager, get_session_manager
from drive.shared.config import settings
from drive.shared.errors import StoreError, Unauthenticated

logger = logging.getLogger(__name__)

session_cookie = APIKeyCookie(name=settings.SESSION_COOKIE_NAME, auto_error=False, scheme_name="sessionCookie")

def session_token(token: Optional[str] = Depends(session_cookie)) -> Optional[str]:
    return token or None

def current_identity(
    token: Optional[str] = Depends(session_token),
    sessions: SessionManager = Depends(get_session_manager),
) -> Optional[Identity]:
    """Resolved identity for this request, None when anonymous."""
    if not token:
        return None
    try:
        return sessions.resolve(token)
    except StoreError:
        # an unreachable store means "not logged in", never a crash
        logger.warning("session store unavailable while resolving a session")
        return None

def require_identity(identity: Optional[Identity] = Depends(current_identity)) -> Identity:
    if identity is None:
        raise Unauthenticated()
    return identity
