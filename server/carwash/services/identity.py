"""
Hosted identity provider (Clerk) integration.

Two concerns live here:
- verifying the short-lived RS256 session tokens the frontend sends as
  bearer tokens, using the provider's JWKS;
- calling the provider's backend API to read users and write the public
  metadata that carries the user's role.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
import jwt
from carwash.config import settings

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10.0  # seconds

# Lazily created so tests and misconfigured environments do not hit the network
_jwks_client: Optional[jwt.PyJWKClient] = None


class IdentityError(Exception):
    """Raised when a session token or provider call cannot be trusted."""


def get_jwks_client() -> jwt.PyJWKClient:
    """Return the process-wide JWKS client (keys are cached by PyJWT)."""
    global _jwks_client
    if _jwks_client is None:
        if not settings.CLERK_JWKS_URL:
            raise IdentityError("CLERK_JWKS_URL is not configured")
        _jwks_client = jwt.PyJWKClient(settings.CLERK_JWKS_URL, cache_keys=True)
    return _jwks_client


def decode_session_token(token: str, signing_key) -> Dict[str, Any]:
    """Decode and validate a session token with a known signing key.

    Checks signature, expiry and not-before; the issuer and authorised party
    are checked only when configured.
    """
    options = {"require": ["exp", "iat", "sub"]}
    kwargs: Dict[str, Any] = {"algorithms": ["RS256"], "options": options, "leeway": 5}
    if settings.CLERK_ISSUER:
        kwargs["issuer"] = settings.CLERK_ISSUER

    try:
        claims = jwt.decode(token, signing_key, **kwargs)
    except jwt.PyJWTError as e:
        raise IdentityError(f"Invalid session token: {e}") from e

    authorized_party = claims.get("azp")
    if (
        settings.CLERK_AUTHORIZED_PARTIES
        and authorized_party
        and authorized_party not in settings.CLERK_AUTHORIZED_PARTIES
    ):
        raise IdentityError(f"Unauthorized party: {authorized_party}")

    return claims


async def verify_session_token(token: str) -> Dict[str, Any]:
    """Verify a bearer session token and return its claims.

    Raises:
        IdentityError: If the token is malformed, expired or not signed by
            the provider.
    """
    if not token:
        raise IdentityError("Missing session token")

    try:
        client = get_jwks_client()
        # PyJWKClient fetches keys with a blocking HTTP call
        signing_key = await asyncio.to_thread(client.get_signing_key_from_jwt, token)
    except jwt.PyJWTError as e:
        raise IdentityError(f"Unable to resolve signing key: {e}") from e

    return decode_session_token(token, signing_key.key)


class IdentityClient:
    """Thin async client for the provider's backend API."""

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None):
        self.secret_key = secret_key if secret_key is not None else settings.CLERK_SECRET_KEY
        self.base_url = (base_url or settings.CLERK_API_URL).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self.secret_key:
            raise IdentityError("CLERK_SECRET_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    async def get_user(self, clerk_id: str) -> Dict[str, Any]:
        """Fetch a provider user record."""
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            response = await client.get(f"{self.base_url}/users/{clerk_id}", headers=self._headers())

        if response.status_code != 200:
            logger.error(f"Identity provider returned {response.status_code} for user {clerk_id}")
            raise IdentityError(f"Failed to fetch user {clerk_id}: HTTP {response.status_code}")
        return response.json()

    async def update_user_metadata(
        self, clerk_id: str, public_metadata: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Merge ``public_metadata`` into the provider user's metadata."""
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            response = await client.patch(
                f"{self.base_url}/users/{clerk_id}/metadata",
                headers=self._headers(),
                json={"public_metadata": public_metadata},
            )

        if response.status_code != 200:
            logger.error(
                f"Identity provider metadata update failed for {clerk_id}: "
                f"HTTP {response.status_code}"
            )
            raise IdentityError(
                f"Failed to update metadata for {clerk_id}: HTTP {response.status_code}"
            )
        logger.info(f"Updated identity metadata for {clerk_id}: {public_metadata}")
        return response.json()


def get_identity_client() -> IdentityClient:
    """FastAPI dependency returning the backend API client."""
    return IdentityClient()
