# tests/test_object_store.py

from __future__ import annotations

import io
from pathlib import Path

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from sprite_tasks.storage.object_store import FileObjectStore, MemoryObjectStore, S3ObjectStore


def _s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


def test_file_store_get_put_list_delete(tmp_path: Path) -> None:
    store = FileObjectStore(tmp_path / "bucket")

    assert store.get("tasks/missing.json") is None

    store.put("tasks/a.json", b'{"id": "a"}')
    store.put("tasks/b.json", b'{"id": "b"}')
    store.put("task-queues/node-a.json", b"{}")

    assert store.get("tasks/a.json") == b'{"id": "a"}'
    assert store.list("tasks/") == {"tasks/a.json", "tasks/b.json"}
    assert store.list("task-queues/") == {"task-queues/node-a.json"}

    store.put("tasks/a.json", b'{"id": "a2"}')
    assert store.get("tasks/a.json") == b'{"id": "a2"}'

    store.delete("tasks/a.json")
    store.delete("tasks/a.json")  # deleting twice is fine
    assert store.list("tasks/") == {"tasks/b.json"}


def test_file_store_rejects_keys_outside_root(tmp_path: Path) -> None:
    store = FileObjectStore(tmp_path / "bucket")
    with pytest.raises(ValueError):
        store.put("../escape.json", b"{}")


def test_memory_store_prefix_listing() -> None:
    store = MemoryObjectStore()
    store.put("tasks/1.json", b"1")
    store.put("task-queues/n.json", b"2")

    # "tasks/" must not match "task-queues/"
    assert store.list("tasks/") == {"tasks/1.json"}
    assert store.get("nope") is None


def test_s3_store_missing_key_is_none() -> None:
    client = _s3_client()
    store = S3ObjectStore("bucket", client=client)

    with Stubber(client) as stub:
        stub.add_client_error(
            "get_object",
            service_error_code="NoSuchKey",
            http_status_code=404,
            expected_params={"Bucket": "bucket", "Key": "tasks/x.json"},
        )
        assert store.get("tasks/x.json") is None
        stub.assert_no_pending_responses()


def test_s3_store_other_errors_propagate() -> None:
    client = _s3_client()
    store = S3ObjectStore("bucket", client=client)

    with Stubber(client) as stub:
        stub.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(ClientError):
            store.get("tasks/x.json")


def test_s3_store_get_put_list() -> None:
    client = _s3_client()
    store = S3ObjectStore("bucket", client=client)
    data = b'{"id": "a"}'

    with Stubber(client) as stub:
        stub.add_response(
            "put_object",
            {},
            {"Bucket": "bucket", "Key": "tasks/a.json", "Body": data, "ContentType": "application/json"},
        )
        stub.add_response(
            "get_object",
            {"Body": StreamingBody(io.BytesIO(data), len(data))},
            {"Bucket": "bucket", "Key": "tasks/a.json"},
        )
        stub.add_response(
            "list_objects_v2",
            {"Contents": [{"Key": "tasks/a.json"}, {"Key": "tasks/b.json"}], "IsTruncated": False},
            {"Bucket": "bucket", "Prefix": "tasks/"},
        )

        store.put("tasks/a.json", data)
        assert store.get("tasks/a.json") == data
        assert store.list("tasks/") == {"tasks/a.json", "tasks/b.json"}
        stub.assert_no_pending_responses()
