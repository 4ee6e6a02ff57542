"""
Admin calls to the hosted auth provider (GoTrue API). Sign-in, sessions and
passwords stay with the provider; the API only sends invitations.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


class AuthProviderError(Exception):
    pass


class AuthProvider:
    def __init__(self, base_url: str, service_key: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._transport = transport

    async def invite_user(self, email: str, metadata: Dict[str, Any], redirect_to: str) -> str:
        """Send the invitation e-mail and return the new account id."""
        headers = {"apikey": self.service_key, "Authorization": f"Bearer {self.service_key}"}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=20.0) as client:
                response = await client.post(
                    f"{self.base_url}/auth/v1/invite",
                    params={"redirect_to": redirect_to},
                    json={"email": email, "data": metadata},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            logger.error("Auth provider unreachable while inviting %s: %s", email, exc)
            raise AuthProviderError("Service d'authentification injoignable") from exc

        if response.status_code >= 400:
            message = "Invitation refusée par le service d'authentification"
            try:
                payload = response.json()
                message = payload.get("msg") or payload.get("error_description") or message
            except ValueError:
                pass
            logger.error("Invite for %s failed (%s): %s", email, response.status_code, message)
            raise AuthProviderError(message)

        user_id = response.json().get("id")
        if not user_id:
            raise AuthProviderError("Réponse d'invitation invalide")
        logger.info("Invited %s (%s)", email, user_id)
        return user_id


def get_auth_provider() -> AuthProvider:
    return AuthProvider(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
