from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from .errors import BackendUnavailable, NotFound, ParseError
from .models import AppState, dump_json, load_json


logger = logging.getLogger(__name__)

# Fixed address of the single application document
DEFAULT_COLLECTION = "lobboard"
DEFAULT_DOCUMENT_ID = "db"

DEFAULT_TIMEOUT = 5.0

_CLIENT_KWARGS = (
    "region_name",
    "aws_access_key_id",
    "aws_secret_access_key",
    "aws_session_token",
    "endpoint_url",
)


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


@dataclass(frozen=True)
class S3DocumentRef:
    bucket: str
    collection: str = DEFAULT_COLLECTION
    document_id: str = DEFAULT_DOCUMENT_ID

    @property
    def key(self) -> str:
        return f"{self.collection}/{self.document_id}.json"


class S3StateStore:
    """
    S3-backed persistence for `AppState`, optionally encrypted at rest using Fernet.

    Usage
    - Provide the document address and, optionally, a Fernet key.
    - `load()` returns the stored document; raises `NotFound` if the object
      does not exist yet.
    - `save(state)` overwrites the object with the whole document.

    The credential blob accepted by `from_credentials` is a JSON object:
    - `bucket` (required)
    - `region_name`, `aws_access_key_id`, `aws_secret_access_key`,
      `aws_session_token`, `endpoint_url` (optional, passed to boto3)
    - `fernet_key` (optional): enables encryption at rest
    - `collection`, `document_id` (optional): override the fixed address
    """

    name = "s3"

    def __init__(
        self,
        *,
        ref: S3DocumentRef,
        s3: Optional[Any] = None,
        fernet_key: Optional[str | bytes] = None,
        timeout: float = DEFAULT_TIMEOUT,
        **client_kwargs: Any,
    ) -> None:
        self._ref = ref
        self._fernet = _to_fernet(fernet_key) if fernet_key else None
        if s3 is None:
            config = Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2, "mode": "standard"},
            )
            s3 = boto3.client("s3", config=config, **client_kwargs)
        self._s3 = s3

    @property
    def ref(self) -> S3DocumentRef:
        return self._ref

    # -------- Construction helpers --------
    @classmethod
    def from_credentials(
        cls,
        blob: str | Mapping[str, Any],
        *,
        s3: Optional[Any] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "S3StateStore":
        """Build a store from a JSON credential blob (string or already-parsed mapping).

        Raises BackendUnavailable if the blob is malformed or incomplete.
        """
        if isinstance(blob, str):
            try:
                creds = json.loads(blob)
            except json.JSONDecodeError as ex:
                raise BackendUnavailable("Remote credentials are not valid JSON") from ex
        else:
            creds = dict(blob)
        if not isinstance(creds, dict):
            raise BackendUnavailable("Remote credentials must be a JSON object")

        bucket = creds.get("bucket")
        if not bucket or not isinstance(bucket, str):
            raise BackendUnavailable("Remote credentials are missing 'bucket'")

        for name in (*_CLIENT_KWARGS, "fernet_key", "collection", "document_id"):
            val = creds.get(name)
            if val is not None and not isinstance(val, str):
                raise BackendUnavailable(f"Remote credential '{name}' must be a string")

        ref = S3DocumentRef(
            bucket=bucket,
            collection=creds.get("collection") or DEFAULT_COLLECTION,
            document_id=creds.get("document_id") or DEFAULT_DOCUMENT_ID,
        )
        client_kwargs = {k: creds[k] for k in _CLIENT_KWARGS if creds.get(k)}
        try:
            return cls(
                ref=ref,
                s3=s3,
                fernet_key=creds.get("fernet_key"),
                timeout=timeout,
                **client_kwargs,
            )
        except (ValueError, TypeError) as ex:
            # Fernet rejects keys that are not 32 url-safe base64 bytes
            raise BackendUnavailable(f"Invalid remote credentials: {ex}") from ex
        except BotoCoreError as ex:
            raise BackendUnavailable(f"Cannot create S3 client: {ex}") from ex

    # -------- Core operations --------
    def load(self) -> AppState:
        """Read (and decrypt) the document from S3.

        Raises:
        - NotFound if the object does not exist.
        - ParseError if decryption fails or content is not a JSON object.
        - BackendUnavailable for any other S3 or network issue.
        """
        try:
            resp = self._s3.get_object(Bucket=self._ref.bucket, Key=self._ref.key)
            body = resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in ("NoSuchKey", "404"):
                raise NotFound(f"No state document at s3://{self._ref.bucket}/{self._ref.key}") from e
            raise BackendUnavailable(f"S3 read failed: {e}") from e
        except (BotoCoreError, TypeError, ValueError) as e:
            # botocore signing raises TypeError/ValueError on unusable credentials
            raise BackendUnavailable(f"S3 read failed: {e}") from e

        if self._fernet is not None:
            try:
                body = self._fernet.decrypt(body)
            except InvalidToken as ex:
                raise ParseError("Failed to decrypt state: invalid Fernet token") from ex

        return load_json(body)

    def save(self, state: AppState) -> None:
        """Encrypt (if configured) and overwrite the document in S3."""
        payload = dump_json(state)
        content_type = "application/json"
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)
            content_type = "application/octet-stream"
        try:
            self._s3.put_object(
                Bucket=self._ref.bucket,
                Key=self._ref.key,
                Body=payload,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError, TypeError, ValueError) as e:
            raise BackendUnavailable(f"S3 write failed: {e}") from e
        logger.debug("Saved state to s3://%s/%s (%d bytes)", self._ref.bucket, self._ref.key, len(payload))
