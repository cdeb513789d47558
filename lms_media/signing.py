import hashlib
import hmac
import secrets


class URLSigner:
    """HMAC signatures for download links served by the local provider."""

    def __init__(self, secret_key: str):
        self.secret_key = secret_key.encode("utf-8")

    def _message(self, *, key: str, expires_at: int, nonce: str) -> bytes:
        return f"{key}\n{expires_at}\n{nonce}".encode("utf-8")

    @staticmethod
    def new_nonce() -> str:
        return secrets.token_hex(8)

    def sign(self, *, key: str, expires_at: int, nonce: str) -> str:
        msg = self._message(key=key, expires_at=expires_at, nonce=nonce)
        return hmac.new(self.secret_key, msg, hashlib.sha256).hexdigest()

    def verify(self, *, key: str, expires_at: int, nonce: str, signature: str) -> bool:
        expected = self.sign(key=key, expires_at=expires_at, nonce=nonce)
        return hmac.compare_digest(expected, signature)
