import mimetypes
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode

import boto3
import structlog
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from lms_media.config import Settings
from lms_media.errors import ObjectNotFound, StorageError, StorageNotConfigured
from lms_media.signing import URLSigner

LOGGER = structlog.get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    content_type: str
    last_modified: datetime | None = None


class ObjectStore(Protocol):
    def sign(
        self, key: str, expires_in: int, *, issued_at: datetime | None = None
    ) -> str: ...

    def stat(self, key: str) -> ObjectInfo: ...


class R2ObjectStore:
    """Cloudflare R2 (S3-compatible) bucket accessed through boto3."""

    def __init__(
        self,
        *,
        endpoint: str,
        bucket: str,
        access_key_id: str,
        secret_access_key: str,
        region: str = "auto",
        client: BaseClient | None = None,
    ):
        self.endpoint = endpoint
        self.bucket = bucket
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region or "auto"
        self._client = client
        self._client_lock = threading.Lock()

    def _ensure_configured(self) -> None:
        if not self.bucket:
            raise StorageNotConfigured("R2 bucket is not configured")
        if self._client is None and not (
            self.endpoint and self.access_key_id and self.secret_access_key
        ):
            raise StorageNotConfigured("R2 storage is not configured (missing LMS_R2_* envs)")

    @property
    def client(self) -> BaseClient:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    # A private session; boto3's default session is not thread-safe.
                    session = boto3.session.Session(
                        aws_access_key_id=self.access_key_id,
                        aws_secret_access_key=self.secret_access_key,
                        region_name=self.region,
                    )
                    self._client = session.client(
                        "s3",
                        endpoint_url=self.endpoint,
                        config=Config(signature_version="s3v4"),
                    )
                    LOGGER.info(
                        "r2_client_initialized", endpoint=self.endpoint, bucket=self.bucket
                    )
        return self._client

    def sign(
        self, key: str, expires_in: int, *, issued_at: datetime | None = None
    ) -> str:
        # botocore stamps X-Amz-Date itself; issued_at is not injectable here.
        self._ensure_configured()
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"presign failed for {key}: {exc}") from exc

    def stat(self, key: str) -> ObjectInfo:
        self._ensure_configured()
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in {"404", "NoSuchKey", "NotFound"}:
                raise ObjectNotFound(key) from exc
            raise StorageError(f"head_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"head_object failed for {key}: {exc}") from exc
        return ObjectInfo(
            key=key,
            size=int(head.get("ContentLength", 0)),
            content_type=head.get("ContentType") or DEFAULT_CONTENT_TYPE,
            last_modified=head.get("LastModified"),
        )


class LocalObjectStore:
    """Media directory on disk, served back through signed download links."""

    def __init__(self, root_dir: str, *, signer: URLSigner, base_url: str):
        self.root = Path(root_dir)
        self.signer = signer
        self.base_url = base_url.rstrip("/")

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        root = self.root.resolve()
        target = (root / key.lstrip("/")).resolve()
        if not target.is_relative_to(root):
            raise ObjectNotFound(key)
        return target

    def sign(
        self, key: str, expires_in: int, *, issued_at: datetime | None = None
    ) -> str:
        now = int(issued_at.timestamp()) if issued_at else int(time.time())
        expires_at = now + expires_in
        nonce = self.signer.new_nonce()
        query = {
            "key": key,
            "exp": expires_at,
            "nonce": nonce,
            "sig": self.signer.sign(key=key, expires_at=expires_at, nonce=nonce),
        }
        return f"{self.base_url}/v1/media/download?{urlencode(query)}"

    def stat(self, key: str) -> ObjectInfo:
        path = self.path_for(key)
        if not path.is_file():
            raise ObjectNotFound(key)
        stat = path.stat()
        content_type, _ = mimetypes.guess_type(path.name)
        return ObjectInfo(
            key=key,
            size=stat.st_size,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


def build_object_store(settings: Settings) -> ObjectStore:
    if settings.storage_provider == "local":
        store = LocalObjectStore(
            settings.local_media_dir,
            signer=URLSigner(settings.local_signing_secret),
            base_url=settings.public_base_url,
        )
    else:
        store = R2ObjectStore(
            endpoint=settings.r2_endpoint,
            bucket=settings.r2_bucket,
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            region=settings.r2_region,
        )
    LOGGER.info("object_store_selected", provider=settings.storage_provider)
    return store
