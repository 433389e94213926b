"""Object storage backends for meme videos.

Supports Supabase Storage (the default), S3/MinIO and the local filesystem.
All backends move whole objects as bytes: clips are capped at a few
megabytes, so streaming uploads buy nothing here.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from memehub.core.config import settings
from memehub.core.metrics import BAAS_REQUESTS_TOTAL

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object cannot be read from or written to storage."""

    pass


@dataclass
class StorageResult:
    """Result of a storage write."""
    success: bool
    key: str
    url: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # supabase, s3, minio, local
    bucket: str = "memes"
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> StorageResult:
        """Store ``data`` under ``key``."""

    @abstractmethod
    def download_bytes(self, key: str) -> bytes:
        """Return the object stored under ``key``.

        Raises:
            StorageError: If the object cannot be fetched
        """

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        """Return the public URL clients use to stream the object."""

    def key_from_url(self, url: str) -> Optional[str]:
        """Inverse of ``get_public_url``: the object key behind ``url``.

        Returns None when ``url`` was not issued by this backend.
        """
        return None


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> StorageResult:
        try:
            dest_path = self._get_full_path(key)
            if dest_path.exists() and not upsert:
                raise StorageError(f"Object already exists: {key}")
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            dest_path.write_bytes(data)
        except (OSError, StorageError) as e:
            return StorageResult(success=False, key=key, url="", error_message=str(e))

        return StorageResult(
            success=True,
            key=key,
            url=self.get_public_url(key),
            file_size=len(data),
        )

    def download_bytes(self, key: str) -> bytes:
        path = self._get_full_path(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    def get_public_url(self, key: str) -> str:
        return self._get_full_path(key).as_uri()

    def key_from_url(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            return None
        path = Path(url2pathname(parsed.path)).resolve()
        root = self.base_path.resolve()
        if not path.is_relative_to(root) or path == root:
            return None
        return path.relative_to(root).as_posix()


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self._client = None

    def _get_client(self):
        """Get or create the boto3 S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
            }
            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # MinIO and other S3-compatible endpoints need path addressing
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)
        return self._client

    def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> StorageResult:
        from botocore.exceptions import BotoCoreError, ClientError

        extra = {} if upsert else {"IfNoneMatch": "*"}
        try:
            response = self._get_client().put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                **extra,
            )
        except (BotoCoreError, ClientError) as e:
            return StorageResult(success=False, key=key, url="", error_message=str(e))

        return StorageResult(
            success=True,
            key=key,
            url=self.get_public_url(key),
            file_size=len(data),
            etag=response.get("ETag", "").strip('"'),
        )

    def download_bytes(self, key: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self._get_client().get_object(Bucket=self.config.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download {key}: {e}") from e

    def get_public_url(self, key: str) -> str:
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}/{key}"
        region = self.config.region or "us-east-1"
        return f"https://{self.config.bucket}.s3.{region}.amazonaws.com/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        prefix = self.get_public_url("")
        base = url.split("?", 1)[0]
        if not base.startswith(prefix):
            return None
        return unquote(base[len(prefix):]) or None


class SupabaseStorage(StorageBackend):
    """Supabase Storage bucket backend.

    Reads go through the public client; writes need the service-role client.
    """

    def __init__(self, config: StorageConfig, client=None, server_client=None):
        self.config = config
        self._client = client
        self._server_client = server_client

    def _read_client(self):
        if self._client is None:
            from memehub.core.supabase import get_supabase_client
            self._client = get_supabase_client() or self._write_client()
        if self._client is None:
            raise StorageError("Supabase is not configured")
        return self._client

    def _write_client(self):
        if self._server_client is None:
            from memehub.core.supabase import get_supabase_server_client
            self._server_client = get_supabase_server_client()
        return self._server_client

    def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> StorageResult:
        client = self._write_client()
        if client is None:
            return StorageResult(
                success=False,
                key=key,
                url="",
                error_message="Server not configured: missing service role key",
            )
        try:
            client.storage.from_(self.config.bucket).upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": str(upsert).lower()},
            )
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="storage", operation="upload", status="error").inc()
            return StorageResult(success=False, key=key, url="", error_message=str(e))

        BAAS_REQUESTS_TOTAL.labels(service="storage", operation="upload", status="ok").inc()
        return StorageResult(
            success=True,
            key=key,
            url=self.get_public_url(key),
            file_size=len(data),
        )

    def download_bytes(self, key: str) -> bytes:
        try:
            data = self._read_client().storage.from_(self.config.bucket).download(key)
        except StorageError:
            raise
        except Exception as e:
            BAAS_REQUESTS_TOTAL.labels(service="storage", operation="download", status="error").inc()
            raise StorageError(f"Failed to download from storage: {e}") from e

        BAAS_REQUESTS_TOTAL.labels(service="storage", operation="download", status="ok").inc()
        return bytes(data) if data is not None else b""

    def get_public_url(self, key: str) -> str:
        client = self._write_client() or self._read_client()
        return client.storage.from_(self.config.bucket).get_public_url(key)

    def key_from_url(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return None
        match = re.search(rf"/object/public/{re.escape(self.config.bucket)}/(.+)$", parsed.path)
        return unquote(match.group(1)) if match else None


def create_storage_backend(config: StorageConfig) -> StorageBackend:
    """Create the backend named by ``config.backend``."""
    backend_type = config.backend.lower()

    if backend_type == "supabase":
        return SupabaseStorage(config)
    elif backend_type == "local":
        return LocalStorage(config)
    elif backend_type in ("s3", "minio", "aws"):
        return S3Storage(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")


_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Get the storage backend configured in settings."""
    global _storage
    if _storage is None:
        _storage = create_storage_backend(StorageConfig(
            backend=settings.STORAGE_BACKEND,
            bucket=settings.STORAGE_BUCKET,
            region=settings.STORAGE_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            local_path=settings.LOCAL_STORAGE_PATH,
        ))
        logger.info("Storage backend initialized: %s", settings.STORAGE_BACKEND)
    return _storage
