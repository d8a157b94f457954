"""Google OAuth 2.0 authorization-code flow.

The provider is an ordinary object handed to the application factory, so
tests can swap in a fake that returns a canned profile.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import httpx

from sessionhub.core import config
from sessionhub.core.exceptions import OAuthError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
GOOGLE_SCOPE = "openid profile email"


@dataclass(frozen=True)
class OAuthProfile:
    provider_id: str
    email: str
    full_name: str | None = None
    picture: str | None = None


class OAuthProvider(Protocol):
    def authorization_url(self, state: str) -> str:
        ...

    async def fetch_profile(self, code: str) -> OAuthProfile:
        ...


class GoogleOAuthProvider:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls) -> "GoogleOAuthProvider":
        return cls(config.GOOGLE_CLIENT_ID, config.GOOGLE_CLIENT_SECRET, config.GOOGLE_CALLBACK_URL)

    def _ensure_configured(self) -> None:
        if not self.client_id or not self.client_secret:
            logger.error("Google OAuth requested but GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are not set")
            raise OAuthError("Google login is not configured")

    def authorization_url(self, state: str) -> str:
        self._ensure_configured()
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        self._ensure_configured()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                token_response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "code": code,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                    headers={"Accept": "application/json"},
                )
                token_response.raise_for_status()
                token_payload = token_response.json()
                access_token = token_payload.get("access_token") if isinstance(token_payload, dict) else None
                if not access_token:
                    raise OAuthError("Google did not return an access token")

                userinfo_response = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_response.raise_for_status()
                userinfo = userinfo_response.json()
        except httpx.HTTPError as exc:
            logger.warning("Google OAuth exchange failed: %s", exc)
            raise OAuthError() from exc
        except ValueError as exc:
            logger.warning("Google OAuth returned a non-JSON response")
            raise OAuthError() from exc

        return parse_google_userinfo(userinfo)


def parse_google_userinfo(userinfo: dict) -> OAuthProfile:
    if not isinstance(userinfo, dict):
        raise OAuthError("Google returned an unexpected profile format")
    provider_id = userinfo.get("sub") or userinfo.get("id")
    email = userinfo.get("email")
    if not provider_id or not email:
        raise OAuthError("Google profile is missing an id or email")
    return OAuthProfile(
        provider_id=str(provider_id),
        email=email,
        full_name=userinfo.get("name"),
        picture=userinfo.get("picture"),
    )
