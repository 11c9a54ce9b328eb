"""Email/password sign-in for staff against the hosted auth service."""

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass
class StaffSession:
    """A signed-in staff member.

    Attributes:
        access_token: Bearer token for admin requests
        email: Staff email address
        expires_in: Token lifetime in seconds, if reported
    """

    access_token: str
    email: str
    expires_in: int | None = None


class StaffAuthClient:
    """Client for a GoTrue-compatible auth API.

    Sign-in and token checks return None/False on failure instead of raising.
    """

    def __init__(self, base_url: str, api_key: str) -> None:
        """Initialize the auth client.

        Args:
            base_url: Auth API base URL (e.g. "https://project.example.co/auth/v1")
            api_key: Public API key sent with every request
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def sign_in(self, email: str, password: str) -> StaffSession | None:
        """Exchange email and password for a session.

        Returns:
            StaffSession on success, None if credentials are wrong or the call fails
        """
        url = f"{self.base_url}/token"
        headers = {"apikey": self.api_key}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    params={"grant_type": "password"},
                    json={"email": email, "password": password},
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()

            return StaffSession(
                access_token=data["access_token"],
                email=data.get("user", {}).get("email", email),
                expires_in=data.get("expires_in"),
            )

        except (httpx.HTTPStatusError, httpx.RequestError, KeyError, ValueError) as e:
            logger.warning(f"Staff sign-in failed for {email}: {e}")
            return None

    async def get_user_email(self, access_token: str) -> str | None:
        """Validate a bearer token.

        Returns:
            The signed-in user's email, or None if the token is not valid
        """
        url = f"{self.base_url}/user"
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {access_token}"}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, headers=headers)
                response.raise_for_status()
                data = response.json()
                email = data.get("email")
                return str(email) if email else None

        except (httpx.HTTPStatusError, httpx.RequestError, ValueError) as e:
            logger.warning(f"Staff token validation failed: {e}")
            return None
