"""
Smart Clearance
Certificate storage backends.

    LocalCertificateStorage  – files under CERTIFICATE_STORAGE_DIR, URLs from
                               CERTIFICATE_PUBLIC_BASE_URL
    S3CertificateStorage     – boto3 put_object / delete_object on
                               CERTIFICATE_S3_BUCKET

The active backend is chosen by CERTIFICATE_STORAGE and cached on
``app.extensions["certificate_storage"]``.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

import boto3
from flask import current_app

logger = logging.getLogger(__name__)


def _clean_key(key: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", key.strip())
    return cleaned or "object"


class CertificateStorage(ABC):
    backend_name = "base"

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Store ``data`` under ``key`` and return its public URL."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False when nothing was stored under it."""


class LocalCertificateStorage(CertificateStorage):
    backend_name = "local"

    def __init__(self, root: str, base_url: str) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self._root / _clean_key(key)

    def put(self, key, data, content_type="application/pdf"):
        path = self.path_for(key)
        path.write_bytes(data)
        return f"{self._base_url}/{path.name}"

    def delete(self, key):
        path = self.path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True


class S3CertificateStorage(CertificateStorage):
    backend_name = "s3"

    def __init__(self, bucket: str, prefix: str = "", region: str = "", client=None) -> None:
        self._bucket = bucket
        self._prefix = prefix.strip("/")
        self._region = region
        if client is None:
            session = boto3.session.Session(region_name=region or None)
            client = session.client("s3")
        self._client = client

    def _object_key(self, key: str) -> str:
        name = _clean_key(key)
        return f"{self._prefix}/{name}" if self._prefix else name

    def _url_for(self, object_key: str) -> str:
        if self._region:
            return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{object_key}"
        return f"https://{self._bucket}.s3.amazonaws.com/{object_key}"

    def put(self, key, data, content_type="application/pdf"):
        object_key = self._object_key(key)
        self._client.put_object(
            Bucket=self._bucket,
            Key=object_key,
            Body=data,
            ContentType=content_type,
        )
        return self._url_for(object_key)

    def delete(self, key):
        self._client.delete_object(Bucket=self._bucket, Key=self._object_key(key))
        return True


def build_storage(config) -> CertificateStorage:
    backend = (config.get("CERTIFICATE_STORAGE") or "local").lower()
    if backend == "s3":
        return S3CertificateStorage(
            bucket=config["CERTIFICATE_S3_BUCKET"],
            prefix=config.get("CERTIFICATE_S3_PREFIX", ""),
            region=config.get("AWS_REGION", ""),
        )
    if backend != "local":
        raise RuntimeError(f"Unknown CERTIFICATE_STORAGE backend: {backend}")
    return LocalCertificateStorage(
        root=config["CERTIFICATE_STORAGE_DIR"],
        base_url=config["CERTIFICATE_PUBLIC_BASE_URL"],
    )


def get_storage() -> CertificateStorage:
    storage = current_app.extensions.get("certificate_storage")
    if storage is None:
        storage = build_storage(current_app.config)
        current_app.extensions["certificate_storage"] = storage
        logger.info("Certificate storage backend: %s", storage.backend_name)
    return storage
