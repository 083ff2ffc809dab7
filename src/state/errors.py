from __future__ import annotations


class StateStoreError(RuntimeError):
    """Base error for state persistence."""


class NotFound(StateStoreError):
    """No document has been written to the backend yet."""


class BackendUnavailable(StateStoreError):
    """Backend cannot be reached: missing/malformed configuration, I/O or network failure."""


class ParseError(StateStoreError):
    """Persisted bytes are not a valid AppState JSON object."""


class PersistenceFailed(StateStoreError):
    """A write was applied to the in-memory state but could not be persisted."""


class StateNotReady(StateStoreError):
    """State has not been loaded yet; the caller should retry later."""
