"""
Whole-document persistence for the Lob board application state.

The entire application (users, logs, rewards) is one JSON document. It is
stored either in a local JSON file or as a single object in S3, and served
from an in-memory cache owned by the Bootstrapper.
"""

from .bootstrap import Available, Bootstrapper, Ready, Unavailable, probe_remote
from .errors import (
    BackendUnavailable,
    NotFound,
    ParseError,
    PersistenceFailed,
    StateNotReady,
    StateStoreError,
)
from .file_store import FileStateStore
from .models import AppState
from .s3_store import S3StateStore

__all__ = [
    "AppState",
    "Available",
    "BackendUnavailable",
    "Bootstrapper",
    "FileStateStore",
    "NotFound",
    "ParseError",
    "PersistenceFailed",
    "Ready",
    "S3StateStore",
    "StateNotReady",
    "StateStoreError",
    "Unavailable",
    "probe_remote",
]
