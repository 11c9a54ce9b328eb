"""Access control for admin endpoints.

Staff authenticate either with a service API key (X-API-Key header) or with a
bearer token issued by the hosted auth service after email/password sign-in.
Customer ordering endpoints need no authentication.
"""

from typing import Annotated

from fastapi import Header, HTTPException

from table_ordering_service.auth.staff_auth_client import StaffAuthClient


class StaffAccessValidator:
    """Validates admin credentials.

    API keys are matched against a configured set; bearer tokens are checked
    with the auth service when one is configured.
    """

    def __init__(self, api_keys: list[str], auth_client: StaffAuthClient | None = None) -> None:
        """Initialize validator.

        Args:
            api_keys: Valid service API keys
            auth_client: Auth service client for bearer tokens

        Raises:
            ValueError: If neither API keys nor an auth client are provided
        """
        if not api_keys and auth_client is None:
            raise ValueError("At least one API key or an auth client must be provided")

        self.api_keys = set(api_keys)
        self.auth_client = auth_client

    def validate_api_key(self, api_key: str) -> bool:
        return api_key in self.api_keys

    async def validate_bearer(self, authorization: str) -> str | None:
        """Resolve an Authorization header to a staff email.

        Returns:
            The staff email, or None if the token is missing or invalid
        """
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token or self.auth_client is None:
            return None
        return await self.auth_client.get_user_email(token.strip())


async def authorize_staff(
    validator: StaffAccessValidator,
    x_api_key: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Check admin credentials from request headers.

    Args:
        validator: Configured StaffAccessValidator
        x_api_key: API key from X-API-Key header
        authorization: Authorization header carrying a bearer token

    Returns:
        str: Identifier of the authenticated principal

    Raises:
        HTTPException: 401 if credentials are missing or invalid
    """
    if x_api_key:
        if validator.validate_api_key(x_api_key):
            return "api-key"
        raise HTTPException(status_code=401, detail="Invalid API key")

    if authorization:
        email = await validator.validate_bearer(authorization)
        if email:
            return email
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    raise HTTPException(status_code=401, detail="Missing credentials")
