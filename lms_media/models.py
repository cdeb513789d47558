from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from lms_media.errors import InvalidExpiry, MissingKey


class SignRequest(BaseModel):
    key: str = Field(min_length=1)
    expiry: int = Field(gt=0)
    filename: str | None = None

    @classmethod
    def build(
        cls,
        key: str | None,
        expiry: int | None,
        *,
        default_expiry: int,
        max_expiry: int,
        filename: str | None = None,
    ) -> "SignRequest":
        key = (key or "").strip()
        if not key:
            raise MissingKey()
        if expiry is None:
            expiry = default_expiry
        if expiry <= 0:
            raise InvalidExpiry(details=f"got {expiry}")
        if expiry > max_expiry:
            raise InvalidExpiry(f"expiry must be <= {max_expiry}", details=f"got {expiry}")
        return cls(key=key, expiry=expiry, filename=filename or None)


class SignedURLResult(BaseModel):
    url: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expiry_seconds(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


class Identity(BaseModel):
    subject_id: str
    email: str | None = None


class SignPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str | None = None
    filename: str | None = None
    expiry: int | None = None
    expires_in: int | None = Field(default=None, alias="expiresIn")

    def resolved_expiry(self) -> int | None:
        return self.expiry if self.expiry is not None else self.expires_in


class SignResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    signed_url: str = Field(alias="signedUrl")
    key: str
    expires_in: int = Field(alias="expiresIn")
    issued_at: datetime = Field(alias="issuedAt")
    expires_at: datetime = Field(alias="expiresAt")


class MediaInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str
    type: str
    mime_type: str = Field(alias="mimeType")
    size: int
    last_modified: datetime | None = Field(default=None, alias="lastModified")


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: str | None = None


class HealthResponse(BaseModel):
    status: str
    environment: str
    timestamp: datetime
