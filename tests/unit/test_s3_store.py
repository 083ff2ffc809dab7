from __future__ import annotations

import json

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from cryptography.fernet import Fernet

from state.errors import BackendUnavailable, NotFound, ParseError
from state.models import AppState
from state.s3_store import DEFAULT_COLLECTION, DEFAULT_DOCUMENT_ID, S3DocumentRef, S3StateStore


class _FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class _FakeS3:
    def __init__(self) -> None:
        self._store = {}  # (bucket, key) -> {Body: bytes, ContentType: str}
        self.fail_with = None

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str):
        if self.fail_with is not None:
            raise self.fail_with
        self._store[(Bucket, Key)] = {"Body": Body, "ContentType": ContentType}
        return {"ETag": f'"fake-{len(Body)}"'}

    def get_object(self, *, Bucket: str, Key: str):
        if self.fail_with is not None:
            raise self.fail_with
        item = self._store.get((Bucket, Key))
        if not item:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(item["Body"])}

    def keys(self):
        return list(self._store)


def _store(s3: _FakeS3, **kwargs) -> S3StateStore:
    return S3StateStore(ref=S3DocumentRef(bucket="b"), s3=s3, **kwargs)


def test_document_key_uses_fixed_collection_and_id():
    ref = S3DocumentRef(bucket="b")
    assert ref.key == f"{DEFAULT_COLLECTION}/{DEFAULT_DOCUMENT_ID}.json"


def test_load_missing_raises_not_found():
    with pytest.raises(NotFound):
        _store(_FakeS3()).load()


def test_save_and_load_roundtrip_plain(sample_doc):
    s3 = _FakeS3()
    store = _store(s3)
    store.save(AppState(sample_doc))

    assert store.load().root == sample_doc
    assert s3.keys() == [("b", "lobboard/db.json")]
    stored = s3._store[("b", "lobboard/db.json")]
    assert stored["ContentType"] == "application/json"
    assert json.loads(stored["Body"]) == sample_doc


def test_save_and_load_roundtrip_encrypted(sample_doc):
    s3 = _FakeS3()
    store = _store(s3, fernet_key=Fernet.generate_key())
    store.save(AppState(sample_doc))

    body = s3._store[("b", "lobboard/db.json")]["Body"]
    assert b"Anna" not in body
    assert store.load().root == sample_doc


def test_load_raises_parse_error_on_bad_token():
    s3 = _FakeS3()
    s3.put_object(Bucket="b", Key="lobboard/db.json", Body=b"garbage", ContentType="application/octet-stream")

    store = _store(s3, fernet_key=Fernet.generate_key())
    with pytest.raises(ParseError):
        store.load()


def test_load_raises_parse_error_on_non_object():
    s3 = _FakeS3()
    s3.put_object(Bucket="b", Key="lobboard/db.json", Body=b"[]", ContentType="application/json")
    with pytest.raises(ParseError):
        _store(s3).load()


@pytest.mark.parametrize(
    "error",
    [
        ClientError({"Error": {"Code": "AccessDenied"}}, "GetObject"),
        EndpointConnectionError(endpoint_url="https://s3.invalid"),
    ],
)
def test_network_and_permission_errors_are_backend_unavailable(error):
    s3 = _FakeS3()
    s3.fail_with = error
    store = _store(s3)
    with pytest.raises(BackendUnavailable):
        store.load()
    with pytest.raises(BackendUnavailable):
        store.save(AppState({}))


def test_from_credentials_builds_store_from_json_blob(sample_doc):
    s3 = _FakeS3()
    blob = json.dumps({"bucket": "team", "collection": "c", "document_id": "d"})
    store = S3StateStore.from_credentials(blob, s3=s3)

    assert store.ref == S3DocumentRef(bucket="team", collection="c", document_id="d")
    store.save(AppState(sample_doc))
    assert s3.keys() == [("team", "c/d.json")]


def test_from_credentials_accepts_mapping():
    store = S3StateStore.from_credentials({"bucket": "team"}, s3=_FakeS3())
    assert store.ref.key == "lobboard/db.json"


def test_from_credentials_creates_boto_client_with_timeouts(monkeypatch):
    from state import s3_store

    captured = {}

    def fake_client(service, **kwargs):
        captured["service"] = service
        captured.update(kwargs)
        return _FakeS3()

    monkeypatch.setattr(s3_store.boto3, "client", fake_client)
    S3StateStore.from_credentials(
        {"bucket": "team", "region_name": "eu-central-1", "aws_access_key_id": "AK", "aws_secret_access_key": "SK"},
        timeout=2.5,
    )
    assert captured["service"] == "s3"
    assert captured["region_name"] == "eu-central-1"
    assert captured["aws_access_key_id"] == "AK"
    assert captured["config"].connect_timeout == 2.5
    assert captured["config"].read_timeout == 2.5
    assert "bucket" not in captured


@pytest.mark.parametrize(
    "blob",
    [
        "{not json",
        "[]",
        json.dumps({"region_name": "eu-central-1"}),
        json.dumps({"bucket": "team", "fernet_key": "too-short"}),
        json.dumps({"bucket": "team", "aws_access_key_id": 123, "aws_secret_access_key": 456}),
        json.dumps({"bucket": "team", "region_name": ["eu-central-1"]}),
        json.dumps({"bucket": "team", "fernet_key": 42}),
        json.dumps({"bucket": "team", "document_id": 7}),
    ],
)
def test_from_credentials_malformed_raises_backend_unavailable(blob):
    with pytest.raises(BackendUnavailable):
        S3StateStore.from_credentials(blob, s3=_FakeS3())


@pytest.mark.parametrize("error", [TypeError("expected str instance, int found"), ValueError("bad header")])
def test_client_type_and_value_errors_are_backend_unavailable(error):
    s3 = _FakeS3()
    s3.fail_with = error
    store = _store(s3)
    with pytest.raises(BackendUnavailable):
        store.load()
    with pytest.raises(BackendUnavailable):
        store.save(AppState({}))
