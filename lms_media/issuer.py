"""Signed-URL issuance for private lesson media.

``SignedURLIssuer.issue`` validates the request, checks the caller's bearer
credential when the deployment requires one, and makes exactly one call into
the object store's signing primitive. It keeps no state between calls: no
caching of issued URLs, no retries, no rate limiting.

The issuer does not check whether the verified subject may read the specific
key; any valid credential unlocks any key in the bucket.
"""

import mimetypes
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from lms_media.errors import (
    InvalidCredential,
    MediaNotFound,
    MissingKey,
    ObjectNotFound,
    SigningFailure,
    Unauthenticated,
)
from lms_media.identity import IdentityVerifier
from lms_media.models import Identity, MediaInfo, SignedURLResult, SignRequest
from lms_media.storage import ObjectStore

LOGGER = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def classify_media(key: str, content_type: str | None) -> str:
    for candidate in (content_type, mimetypes.guess_type(key)[0]):
        if not candidate:
            continue
        if candidate.startswith("video/"):
            return "video"
        if candidate.startswith("audio/"):
            return "audio"
    return "document"


class SignedURLIssuer:
    def __init__(
        self,
        store: ObjectStore,
        *,
        verifier: IdentityVerifier | None = None,
        require_auth: bool = False,
        default_expiry: int = 3600,
        max_expiry: int = 7 * 24 * 3600,
        clock: Callable[[], datetime] = utc_now,
    ):
        if require_auth and verifier is None:
            raise ValueError("require_auth needs an identity verifier")
        self.store = store
        self.verifier = verifier
        self.require_auth = require_auth
        self.default_expiry = default_expiry
        self.max_expiry = max_expiry
        self.clock = clock

    def authenticate(self, credential: str | None) -> Identity | None:
        if not self.require_auth:
            return None
        if not credential:
            raise Unauthenticated()
        try:
            return self.verifier.verify(credential)
        except InvalidCredential:
            LOGGER.info("credential_rejected")
            raise

    def issue(
        self,
        key: str | None,
        credential: str | None = None,
        expiry: int | None = None,
        *,
        filename: str | None = None,
    ) -> SignedURLResult:
        request = SignRequest.build(
            key,
            expiry,
            default_expiry=self.default_expiry,
            max_expiry=self.max_expiry,
            filename=filename,
        )
        identity = self.authenticate(credential)

        issued_at = self.clock()
        try:
            url = self.store.sign(request.key, request.expiry, issued_at=issued_at)
        except Exception as exc:
            LOGGER.error(
                "signing_failed",
                key=request.key,
                expiry=request.expiry,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise SigningFailure() from exc

        result = SignedURLResult(
            url=url,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=request.expiry),
        )
        LOGGER.info(
            "signed_url_issued",
            key=request.key,
            filename=request.filename,
            expiry=request.expiry,
            subject_id=identity.subject_id if identity else None,
            expires_at=result.expires_at.isoformat(),
        )
        return result

    def describe(self, key: str | None, credential: str | None = None) -> MediaInfo:
        key = (key or "").strip()
        if not key:
            raise MissingKey()
        self.authenticate(credential)
        try:
            info = self.store.stat(key)
        except ObjectNotFound as exc:
            raise MediaNotFound(details=key) from exc
        except Exception as exc:
            LOGGER.error("media_lookup_failed", key=key, error=str(exc))
            raise SigningFailure("Failed to read media info") from exc
        return MediaInfo(
            key=key,
            type=classify_media(key, info.content_type),
            mime_type=info.content_type,
            size=info.size,
            last_modified=info.last_modified,
        )
