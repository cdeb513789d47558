"""Error taxonomy for signed-URL issuance.

Client errors carry enough detail to fix the request. Server errors carry a
generic message; the underlying cause is logged, never returned.
"""


class IssuerError(Exception):
    code = "error"
    status_code = 500
    default_message = "request failed"

    def __init__(self, message: str | None = None, *, details: str | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class MissingKey(IssuerError):
    code = "missing_key"
    status_code = 400
    default_message = "Missing key parameter"


class InvalidExpiry(IssuerError):
    code = "invalid_expiry"
    status_code = 400
    default_message = "expiry must be a positive number of seconds"


class Unauthenticated(IssuerError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Missing or invalid authorization header"


class InvalidCredential(IssuerError):
    code = "invalid_credential"
    status_code = 401
    default_message = "Invalid token"


class MediaNotFound(IssuerError):
    code = "not_found"
    status_code = 404
    default_message = "media not found"


class SigningFailure(IssuerError):
    code = "signing_failure"
    status_code = 500
    default_message = "Failed to generate signed URL"


class VerifierUnavailable(IssuerError):
    code = "verifier_unavailable"
    status_code = 503
    default_message = "Unable to verify credentials"


class StorageError(Exception):
    """Raised by object store adapters when the provider call fails."""


class StorageNotConfigured(StorageError):
    pass


class ObjectNotFound(StorageError):
    pass
