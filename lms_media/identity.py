"""Bearer-token verification against an external identity authority."""

from typing import Protocol

import httpx
import structlog

from lms_media.errors import InvalidCredential, VerifierUnavailable
from lms_media.models import Identity

LOGGER = structlog.get_logger(__name__)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Identity: ...


class SupabaseIdentityVerifier:
    """Resolve a Supabase access token to its user via the auth API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self._client = client or httpx.Client(timeout=timeout)

    def verify(self, token: str) -> Identity:
        if not self.base_url:
            LOGGER.error("identity_verifier_not_configured")
            raise VerifierUnavailable()
        try:
            response = self._client.get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    "apikey": self.service_key,
                },
            )
        except httpx.HTTPError as exc:
            LOGGER.warning("identity_verifier_unreachable", error=str(exc))
            raise VerifierUnavailable() from exc

        if response.status_code in (400, 401, 403, 404):
            raise InvalidCredential()
        if not response.is_success:
            LOGGER.warning("identity_verifier_error", status_code=response.status_code)
            raise VerifierUnavailable()

        try:
            body = response.json()
        except ValueError as exc:
            raise VerifierUnavailable() from exc
        subject_id = body.get("id") if isinstance(body, dict) else None
        if not subject_id:
            raise InvalidCredential()
        return Identity(subject_id=str(subject_id), email=body.get("email"))

    def close(self) -> None:
        self._client.close()
