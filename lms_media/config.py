from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# SigV4 presigned URLs cannot outlive seven days on S3 or R2.
PROVIDER_MAX_EXPIRY_SECONDS = 7 * 24 * 3600


class Settings(BaseSettings):
    app_name: str = "ielts-lms-media"
    app_env: str = "dev"
    log_level: str = "INFO"

    storage_provider: str = "r2"
    r2_endpoint: str = ""
    r2_bucket: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_region: str = "auto"

    default_expiry_seconds: int = Field(default=3600, gt=0)
    max_expiry_seconds: int = Field(default=PROVIDER_MAX_EXPIRY_SECONDS, gt=0)

    require_auth: bool = False
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    identity_timeout_seconds: float = 5.0

    local_media_dir: str = "media"
    local_signing_secret: str = "change-me-in-production"
    public_base_url: str = "http://localhost:8000"

    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_prefix="LMS_")

    @field_validator("storage_provider")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"r2", "local"}:
            raise ValueError(f"unsupported storage provider: {value}")
        return value

    @field_validator("max_expiry_seconds")
    @classmethod
    def _within_provider_ceiling(cls, value: int) -> int:
        if value > PROVIDER_MAX_EXPIRY_SECONDS:
            raise ValueError(f"max_expiry_seconds must be <= {PROVIDER_MAX_EXPIRY_SECONDS}")
        return value

    @model_validator(mode="after")
    def _default_within_max(self) -> "Settings":
        if self.default_expiry_seconds > self.max_expiry_seconds:
            raise ValueError("default_expiry_seconds must be <= max_expiry_seconds")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
