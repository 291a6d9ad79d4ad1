# drive/auth/api.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from drive.shared.db import get_db
from drive.shared.auth import current_identity, session_token
from drive.shared.config import settings
from drive.shared.errors import BadRequest, DriveError, NotFound, ProviderError, StoreError, Unauthenticated
from drive.shared.http import error_response
from drive.auth.google import STATE_COOKIE, GoogleOAuthClient, get_google_client, issue_state, verify_state
from drive.auth.schemas import AuthCheckOut, Identity, LoginInfoOut, MessageOut, UserEnvelope
from drive.auth.service import link_identity
from drive.auth.sessions import SessionManager, clear_session_cookie, get_session_manager, set_session_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

def _frontend(path: str) -> str:
    return settings.FRONTEND_URL.rstrip("/") + path

def _login_failed(reason: str) -> RedirectResponse:
    # only the coarse reason reaches the browser; details stay in the log
    resp = RedirectResponse(_frontend(f"/?error={reason}"), status_code=302)
    resp.delete_cookie(STATE_COOKIE)
    return resp

@router.get("/login", response_model=LoginInfoOut)
def api_login():
    return {
        "message": "Please authenticate with Google",
        "loginUrl": f"{settings.API_PREFIX}/auth/google",
    }

@router.get("/google")
def api_google(google: Optional[GoogleOAuthClient] = Depends(get_google_client)):
    if google is None:
        return error_response("Google login is not configured", 503)
    state = issue_state()
    resp = RedirectResponse(google.authorization_url(state), status_code=302)
    # lax so the cookie survives the top-level redirect back from Google
    resp.set_cookie(
        STATE_COOKIE, state,
        max_age=settings.OAUTH_STATE_TTL_MIN * 60,
        httponly=True, secure=settings.COOKIE_SECURE, samesite="lax",
    )
    return resp

@router.get("/google/callback")
async def api_google_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    old_token: Optional[str] = Depends(session_token),
    google: Optional[GoogleOAuthClient] = Depends(get_google_client),
    sessions: SessionManager = Depends(get_session_manager),
    db: Session = Depends(get_db),
):
    if google is None:
        logger.error("oauth callback hit without Google credentials configured")
        return _login_failed("auth_error")
    if error:
        logger.warning("google returned error=%s", error)
        return _login_failed("auth_error")
    if not code or not verify_state(state, request.cookies.get(STATE_COOKIE)):
        logger.warning("oauth callback with missing code or bad state")
        return _login_failed("auth_failed")

    try:
        profile = await google.fetch_profile(code)
    except ProviderError as e:
        return _login_failed(e.reason)

    try:
        identity = await run_in_threadpool(link_identity, db, google.issuer, profile)
    except (NotFound, BadRequest) as e:
        logger.error("login produced no user: %s", e.message)
        return _login_failed("no_user")
    except DriveError as e:
        logger.error("identity linking failed: %s", e.message)
        return _login_failed("auth_error")

    try:
        if old_token:
            await run_in_threadpool(sessions.destroy, old_token)
        token = await run_in_threadpool(sessions.create, identity)
    except StoreError:
        logger.exception("could not create session for user %s", identity.id)
        return _login_failed("login_failed")

    logger.info("user %s logged in", identity.id)
    resp = RedirectResponse(_frontend("/auth/callback"), status_code=302)
    resp.delete_cookie(STATE_COOKIE)
    set_session_cookie(resp, token)
    return resp

@router.post("/logout", response_model=MessageOut)
def api_logout(
    token: Optional[str] = Depends(session_token),
    sessions: SessionManager = Depends(get_session_manager),
):
    sessions.destroy(token)
    resp = JSONResponse({"message": "Logged out successfully"})
    clear_session_cookie(resp)
    return resp

@router.get("/user", response_model=UserEnvelope)
def api_user(identity: Optional[Identity] = Depends(current_identity)):
    return {"user": identity}

@router.get("/check", response_model=AuthCheckOut)
def api_check(identity: Optional[Identity] = Depends(current_identity)):
    return {"isAuthenticated": identity is not None, "user": identity}

@router.get("/profile", response_model=UserEnvelope)
def api_profile(identity: Optional[Identity] = Depends(current_identity)):
    if identity is None:
        raise Unauthenticated("Not authenticated")
    return {"user": identity}
