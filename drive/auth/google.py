"""
Google OAuth 2.0 / OpenID Connect client.

Only the authorization-code flow is used: send the browser to Google, get a
code back on the callback, exchange it for tokens and read the userinfo
claims. The verified claims become a ProviderProfile for the identity linker.
"""
import logging, secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from jose import jwt, JWTError  # python-jose[cryptography]

from drive.auth.schemas import GOOGLE_ISSUER, ProviderProfile
from drive.shared.config import settings
from drive.shared.errors import ProviderError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
SCOPES = ["openid", "profile", "email"]

STATE_COOKIE = "drive-oauth-state"
_STATE_ALG = "HS256"
_STATE_PURPOSE = "oauth-state"

def issue_state(minutes: Optional[int] = None) -> str:
    """Signed, expiring state value; also stored in a cookie and compared on callback."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes or settings.OAUTH_STATE_TTL_MIN)
    payload = {
        "nonce": secrets.token_urlsafe(16),
        "purpose": _STATE_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=_STATE_ALG)

def verify_state(state: Optional[str], cookie_state: Optional[str]) -> bool:
    if not state or not cookie_state or not secrets.compare_digest(state, cookie_state):
        return False
    try:
        payload = jwt.decode(state, settings.SECRET_KEY, algorithms=[_STATE_ALG])
    except JWTError as e:
        logger.info("rejected oauth state: %s", e)
        return False
    return payload.get("purpose") == _STATE_PURPOSE


class GoogleOAuthClient:
    issuer = GOOGLE_ISSUER

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(SCOPES),
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> dict[str, Any]:
        resp = await client.post(
            TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        if resp.status_code != 200:
            logger.error("google token exchange failed: %s %s", resp.status_code, resp.text)
            raise ProviderError("auth_error")
        tokens = resp.json()
        if not tokens.get("access_token"):
            logger.error("google token response without access_token")
            raise ProviderError("auth_error")
        return tokens

    async def userinfo(self, client: httpx.AsyncClient, access_token: str) -> dict[str, Any]:
        resp = await client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        if resp.status_code != 200:
            logger.error("google userinfo failed: %s %s", resp.status_code, resp.text)
            raise ProviderError("auth_error")
        return resp.json()

    async def fetch_profile(self, code: str) -> ProviderProfile:
        try:
            async with self._client() as client:
                tokens = await self.exchange_code(client, code)
                info = await self.userinfo(client, tokens["access_token"])
            return ProviderProfile.from_userinfo(info)
        except httpx.HTTPError as e:
            logger.error("google request failed: %s", e)
            raise ProviderError("auth_error") from e
        except ValueError as e:  # non-JSON body or claims that do not validate
            logger.error("google returned an unreadable profile: %s", e)
            raise ProviderError("auth_error") from e


_client: GoogleOAuthClient | None = None

# FastAPI dep; None when Google credentials are not configured
def get_google_client() -> GoogleOAuthClient | None:
    global _client
    if not settings.google_configured:
        return None
    if _client is None:
        _client = GoogleOAuthClient(
            settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET, settings.GOOGLE_CALLBACK_URL
        )
    return _client
