from __future__ import annotations

import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings


class StorageError(Exception):
    """Raised when a durable store rejects or fails an operation."""


@dataclass(slots=True)
class StorageStat:
    size_bytes: int | None
    content_type: str | None = None
    etag: str | None = None


class Storage(ABC):
    backend: str = "abstract"

    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def stat(self, key: str) -> StorageStat: ...

    @abstractmethod
    def put(self, key: str, stream: BinaryIO, *, content_type: str) -> str: ...

    @abstractmethod
    def open(self, key: str) -> BinaryIO: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def public_url(self, key: str) -> str: ...

    def read_bytes(self, key: str) -> bytes:
        with self.open(key) as handle:
            return handle.read()


class LocalStorage(Storage):
    """Filesystem-backed storage; serves thumbnails and development videos."""

    backend = "local"

    def __init__(self, base_path: Path, *, base_url: str):
        self.base_path = Path(base_path).resolve()
        self.base_url = base_url.rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        candidate = (self.base_path / key).resolve()
        if candidate == self.base_path or not candidate.is_relative_to(self.base_path):
            raise ValueError(f"storage key escapes the storage root: {key}")
        return candidate

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def stat(self, key: str) -> StorageStat:
        path = self._resolve(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        return StorageStat(size_bytes=path.stat().st_size)

    def put(self, key: str, stream: BinaryIO, *, content_type: str) -> str:
        path = self._resolve(key)
        partial = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as target:
                shutil.copyfileobj(stream, target)
            os.replace(partial, path)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            raise StorageError(f"local write failed for {key}: {exc}") from exc
        return path.as_uri()

    def open(self, key: str) -> BinaryIO:
        path = self._resolve(key)
        if not path.is_file():
            raise FileNotFoundError(key)
        return path.open("rb")

    def delete(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


class S3Storage(Storage):
    """S3 (or S3-compatible) object storage for uploaded videos."""

    backend = "s3"

    def __init__(self, client: Any, bucket: str, *, distribution_url: str | None = None, region: str = "us-east-1"):
        self.client = client
        self.bucket = bucket
        self.distribution_url = distribution_url.rstrip("/") if distribution_url else None
        self.region = region

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        if not settings.s3_bucket:
            raise ValueError("TUBELY_S3_BUCKET is required for the s3 video backend")
        session = boto3.session.Session(
            aws_access_key_id=settings.secrets.s3_access_key_id,
            aws_secret_access_key=settings.secrets.s3_secret_access_key,
            region_name=settings.s3_region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            config=Config(signature_version="s3v4"),
        )
        return cls(client, settings.s3_bucket, distribution_url=settings.s3_cf_distribution, region=settings.s3_region)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageError(f"s3 head failed for {key}: {exc}") from exc
        return True

    def stat(self, key: str) -> StorageStat:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                raise FileNotFoundError(key) from exc
            raise StorageError(f"s3 head failed for {key}: {exc}") from exc
        return StorageStat(
            size_bytes=head.get("ContentLength"),
            content_type=head.get("ContentType"),
            etag=head.get("ETag"),
        )

    def put(self, key: str, stream: BinaryIO, *, content_type: str) -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=stream, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"s3 put failed for {key}: {exc}") from exc
        return f"s3://{self.bucket}/{key}"

    def open(self, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                raise FileNotFoundError(key) from exc
            raise StorageError(f"s3 get failed for {key}: {exc}") from exc
        return response["Body"]

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"s3 delete failed for {key}: {exc}") from exc

    def public_url(self, key: str) -> str:
        if self.distribution_url:
            return f"{self.distribution_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


def get_thumbnail_storage(settings: Settings) -> Storage:
    return LocalStorage(base_path=Path(settings.assets_root), base_url=settings.assets_base_url)


def get_video_storage(settings: Settings) -> Storage:
    if settings.video_storage_backend == "local":
        return LocalStorage(base_path=Path(settings.assets_root), base_url=settings.assets_base_url)
    if settings.video_storage_backend == "s3":
        return S3Storage.from_settings(settings)
    raise ValueError(f"Unsupported storage backend: {settings.video_storage_backend}")


__all__ = [
    "Storage",
    "StorageError",
    "LocalStorage",
    "S3Storage",
    "StorageStat",
    "get_thumbnail_storage",
    "get_video_storage",
]
