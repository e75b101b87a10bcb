"""Object storage for deliverable and project files.

``LocalObjectStorage`` keeps objects on disk under ``storage_root`` and hands
out HMAC-signed, expiring URLs served by the ``/files`` route.
``AzureBlobObjectStorage`` keeps them in a blob container and hands out
read-only SAS URLs. Keys look like ``<folder>/<uuid>-<filename>``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import time
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, urlencode

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas

from ebtracker.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageProvider:
    LOCAL = "local"
    AZURE = "azure"


class StorageError(OSError):
    """The storage backend refused or failed an operation."""


class ObjectStorage(Protocol):
    def upload(self, data: bytes, filename: str, mimetype: str, folder: str) -> str:
        ...

    def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        ...

    def delete(self, key: str) -> None:
        ...

    def verify(self, key: str, expires: int, signature: str) -> bool:
        ...

    def read(self, key: str) -> bytes:
        ...


def _safe_name(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("-", value).strip("-.")
    return cleaned or "file"


def object_key(folder: str, filename: str) -> str:
    prefix = "/".join(_safe_name(part) for part in folder.split("/") if part.strip()) or "files"
    return f"{prefix}/{uuid.uuid4().hex}-{_safe_name(filename)}"


class LocalObjectStorage:
    def __init__(self, root: str | Path, *, public_url: str, signing_secret: str, default_ttl_seconds: int = 3600):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        self._secret = signing_secret.encode("utf-8")
        self.default_ttl_seconds = default_ttl_seconds

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def _signature(self, key: str, expires: int) -> str:
        return hmac.new(self._secret, f"{key}:{expires}".encode("utf-8"), hashlib.sha256).hexdigest()

    def upload(self, data: bytes, filename: str, mimetype: str, folder: str) -> str:
        key = object_key(folder, filename)
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("Stored %s (%s, %d bytes)", key, mimetype, len(data))
        return key

    def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        expires = int(time.time()) + (ttl_seconds or self.default_ttl_seconds)
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self.public_url}/{quote(key)}?{query}"

    def verify(self, key: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()
            logger.info("Deleted %s", key)


def _connection_setting(connection_string: str, name: str) -> str | None:
    for part in connection_string.split(";"):
        key, _, value = part.partition("=")
        if key.strip() == name:
            return value.strip()
    return None


class AzureBlobObjectStorage:
    """Blob container backend. SDK failures surface as ``StorageError``."""

    def __init__(
        self,
        connection_string: str,
        container: str,
        *,
        default_ttl_seconds: int = 3600,
        service_client: Any | None = None,
    ) -> None:
        self._service = service_client or BlobServiceClient.from_connection_string(connection_string)
        self.container_name = container
        self._container = self._service.get_container_client(container)
        self._account_key = _connection_setting(connection_string, "AccountKey")
        self.default_ttl_seconds = default_ttl_seconds

    def upload(self, data: bytes, filename: str, mimetype: str, folder: str) -> str:
        key = object_key(folder, filename)
        try:
            self._container.upload_blob(
                name=key,
                data=data,
                overwrite=True,
                content_settings=ContentSettings(content_type=mimetype),
            )
        except AzureError as exc:
            raise StorageError(f"Blob upload failed for {key}: {exc}") from exc
        logger.info("Stored blob %s (%s, %d bytes)", key, mimetype, len(data))
        return key

    def signed_url(self, key: str, ttl_seconds: int | None = None) -> str:
        if not self._account_key:
            raise StorageError("AccountKey missing from the storage connection string")
        token = generate_blob_sas(
            account_name=self._service.account_name,
            container_name=self.container_name,
            blob_name=key,
            account_key=self._account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds or self.default_ttl_seconds),
        )
        return f"{self._container.get_blob_client(key).url}?{token}"

    def verify(self, key: str, expires: int, signature: str) -> bool:
        # SAS URLs are checked by the blob service, never by the /files route.
        return False

    def read(self, key: str) -> bytes:
        try:
            return self._container.download_blob(key).readall()
        except ResourceNotFoundError:
            raise FileNotFoundError(key) from None
        except AzureError as exc:
            raise StorageError(f"Blob download failed for {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._container.delete_blob(key)
        except ResourceNotFoundError:
            logger.info("Blob %s already absent", key)
            return
        except AzureError as exc:
            raise StorageError(f"Blob delete failed for {key}: {exc}") from exc
        logger.info("Deleted blob %s", key)


def build_object_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_provider == StorageProvider.AZURE:
        if not settings.azure_storage_connection_string:
            raise ValueError("azure_storage_connection_string must be configured for the azure storage provider")
        return AzureBlobObjectStorage(
            settings.azure_storage_connection_string,
            settings.azure_storage_container,
            default_ttl_seconds=settings.storage_url_ttl_seconds,
        )
    if settings.storage_provider != StorageProvider.LOCAL:
        raise ValueError(f"Unknown storage provider: {settings.storage_provider}")
    return LocalObjectStorage(
        settings.storage_root,
        public_url=settings.storage_public_url,
        signing_secret=settings.storage_signing_secret,
        default_ttl_seconds=settings.storage_url_ttl_seconds,
    )


@lru_cache
def get_object_storage() -> ObjectStorage:
    return build_object_storage(get_settings())
