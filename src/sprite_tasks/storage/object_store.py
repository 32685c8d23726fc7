# src/sprite_tasks/storage/object_store.py

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import ClientError

from ..errors import TaskFormatError

logger = logging.getLogger(__name__)

DEFAULT_S3_ENDPOINT = "https://fly.storage.tigris.dev"

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def encode_record(data: dict[str, Any]) -> bytes:
    return json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")


def decode_record(raw: bytes, *, key: str) -> dict[str, Any]:
    try:
        val = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TaskFormatError(f"{key}: invalid JSON ({exc})") from exc
    if not isinstance(val, dict):
        raise TaskFormatError(f"{key}: expected a JSON object")
    return val


class S3ObjectStore:
    """
    S3-compatible bucket (Tigris by default).

    No conditional writes and no retries: every put() overwrites,
    and transport errors propagate to the caller.
    """

    def __init__(self, bucket: str, *, client: Any = None, **client_kwargs: Any) -> None:
        self._bucket = bucket
        self._client = client if client is not None else boto3.client("s3", **client_kwargs)
        logger.info("S3ObjectStore ready bucket=%s", bucket)

    @classmethod
    def from_credentials(cls, creds: dict[str, Any]) -> S3ObjectStore:
        """Build from the shared credentials file payload (AWS_* + BUCKET_NAME)."""
        return cls(
            str(creds["BUCKET_NAME"]),
            region_name="auto",
            endpoint_url=creds.get("AWS_ENDPOINT_URL_S3") or DEFAULT_S3_ENDPOINT,
            aws_access_key_id=creds["AWS_ACCESS_KEY_ID"],
            aws_secret_access_key=creds["AWS_SECRET_ACCESS_KEY"],
        )

    def get(self, key: str) -> bytes | None:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return None
            raise
        body = resp["Body"].read()
        return body or None

    def put(self, key: str, data: bytes) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType="application/json",
        )
        logger.debug("put %s (%d bytes)", key, len(data))

    def list(self, prefix: str) -> set[str]:
        keys: set[str] = set()
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                keys.add(obj["Key"])
        return keys

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self._bucket, Key=key)
        logger.debug("deleted %s", key)


class FileObjectStore:
    """
    Directory-backed store, e.g. a volume shared by all nodes.

    Keys map to relative paths. Writes go to a temp file first and are
    swapped in with os.replace so readers never see a partial record.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        logger.info("FileObjectStore ready root=%s", self._root)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise ValueError(f"key escapes store root: {key!r}")
        return path

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    def list(self, prefix: str) -> set[str]:
        keys: set[str] = set()
        for path in self._root.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            key = path.relative_to(self._root).as_posix()
            if key.startswith(prefix):
                keys.add(key)
        return keys

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class MemoryObjectStore:
    """In-process store for tests and single-process demos."""

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self.objects.get(key)

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self.objects[key] = bytes(data)

    def list(self, prefix: str) -> set[str]:
        with self._lock:
            return {k for k in self.objects if k.startswith(prefix)}

    def delete(self, key: str) -> None:
        with self._lock:
            self.objects.pop(key, None)
