"""
Google OAuth provider for user and admin sign-in.
"""

from urllib.parse import urlencode

import httpx
from structlog import get_logger

from app.models.domain import OAuthToken, OAuthUser

logger = get_logger(__name__)


class GoogleOAuthProvider:
    """Google OAuth 2.0 authorization-code flow."""

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v1/userinfo"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        hd_domain: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.hd_domain = hd_domain
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    def get_authorization_url(self, state: str, redirect_uri: str, hd_domain: str | None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        if hd_domain:
            params["hd"] = hd_domain
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> OAuthToken:
        """
        Exchange authorization code for access token.

        Raises:
            ValueError: Google rejected the code or was unreachable
        """
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            response = await self.http_client.post(self.TOKEN_URL, data=data)
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "token_exchange_failed", status=e.response.status_code, text=e.response.text
            )
            raise ValueError(f"Failed to exchange code: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("token_exchange_error", error=str(e))
            raise ValueError("Failed to exchange authorization code") from e

        return OAuthToken(
            access_token=token_data["access_token"],
            token_type=token_data.get("token_type", "Bearer"),
            expires_in=int(token_data.get("expires_in") or 0),
            refresh_token=token_data.get("refresh_token"),
            id_token=token_data.get("id_token"),
        )

    async def get_user_info(self, access_token: str, hd_domain: str | None = None) -> OAuthUser:
        """
        Fetch the signed-in profile.

        Raises:
            ValueError: fetch failed, email unverified, or outside ``hd_domain``
        """
        try:
            response = await self.http_client.get(
                self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            response.raise_for_status()
            user_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "user_info_fetch_failed", status=e.response.status_code, text=e.response.text
            )
            raise ValueError(f"Failed to get user info: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("user_info_error", error=str(e))
            raise ValueError("Failed to get user information") from e

        email = (user_data.get("email") or "").lower()
        if not email:
            raise ValueError("Google account has no email address")
        if user_data.get("verified_email") is False:
            raise ValueError("Google account email is not verified")
        if hd_domain and not email.endswith(f"@{hd_domain}"):
            logger.warning("unauthorized_domain_attempt", email=email)
            raise ValueError(f"Only @{hd_domain} emails are allowed")

        return OAuthUser(
            id=str(user_data["id"]),
            email=email,
            name=user_data.get("name"),
            picture=user_data.get("picture"),
            hd=user_data.get("hd"),
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
