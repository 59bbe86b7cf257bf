from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError


class StorageError(RuntimeError):
    pass


class Storage:
    """
    Object store contract used by submissions.

    Keys are slash-separated object names. A "container" is a key prefix; backends
    without real directories treat ensure_container() as a marker write.
    """

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def get_bytes(self, key: str) -> bytes:
        with self.open(key) as fh:
            return fh.read()

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def move(self, key: str, target_key: str) -> str:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def ensure_container(self, prefix: str) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        if any(part == ".." for part in safe_key.split("/")):
            raise StorageError(f"Refusing key outside storage root: {key!r}")
        return self.root / safe_key

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        try:
            return p.open("rb")
        except FileNotFoundError as e:
            raise StorageError(f"Object not found: {key}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def move(self, key: str, target_key: str) -> str:
        src = self._path(key)
        dst = self._path(target_key)
        if not src.is_file():
            raise StorageError(f"Object not found: {key}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.replace(src, dst)
        except OSError as e:
            raise StorageError(f"Move {key} -> {target_key} failed: {e}") from e
        return target_key

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Delete {key} failed: {e}") from e

    def ensure_container(self, prefix: str) -> str:
        self._path(prefix).mkdir(parents=True, exist_ok=True)
        return prefix


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str
    timeout_seconds: float = 30.0
    _cache: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def _client(self):
        client = self._cache.get("client")
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
                region_name=self.region or None,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                config=Config(
                    connect_timeout=self.timeout_seconds,
                    read_timeout=self.timeout_seconds,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
            self._cache["client"] = client
        return client

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        extra: dict[str, object] = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client().put_object(Bucket=self.bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Upload {key} failed: {e}") from e

    def open(self, key: str) -> BinaryIO:
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Download {key} failed: {e}") from e
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Lookup {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Lookup {key} failed: {e}") from e

    def move(self, key: str, target_key: str) -> str:
        # S3 has no rename: copy then delete the source.
        client = self._client()
        try:
            client.copy_object(
                Bucket=self.bucket,
                Key=target_key,
                CopySource={"Bucket": self.bucket, "Key": key},
            )
            client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Move {key} -> {target_key} failed: {e}") from e
        return target_key

    def delete(self, key: str) -> None:
        try:
            self._client().delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Delete {key} failed: {e}") from e

    def ensure_container(self, prefix: str) -> str:
        marker = prefix.rstrip("/") + "/"
        if not self.exists(marker):
            self.put_bytes(marker, b"")
        return prefix


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
            timeout_seconds=float(config.get("STORAGE_TIMEOUT_SECONDS") or 30.0),
        )
    if backend != "local":
        raise StorageError(f"Unknown STORAGE_BACKEND {backend!r}; expected 'local' or 's3'.")
    root = Path(config.get("STORAGE_ROOT") or Path(os.getcwd()) / "storage")
    return LocalStorage(root=root)
