from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from .base import StateStore
from .errors import (
    BackendUnavailable,
    NotFound,
    ParseError,
    PersistenceFailed,
    StateNotReady,
    StateStoreError,
)
from .file_store import FileStateStore
from .models import DEFAULT_DOCUMENT, AppState
from .s3_store import DEFAULT_TIMEOUT, S3StateStore


logger = logging.getLogger(__name__)


# -------- Capability probe --------
@dataclass(frozen=True)
class Available:
    store: StateStore


@dataclass(frozen=True)
class Unavailable:
    reason: str
    # False when the remote backend was simply not configured (local-only mode)
    configured: bool = True


ProbeResult = Union[Available, Unavailable]


def probe_remote(
    credentials: Optional[str | Mapping[str, Any]],
    *,
    s3: Optional[Any] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ProbeResult:
    """Try to construct the remote-document backend from a credential blob."""
    if not credentials:
        return Unavailable("remote credentials not configured", configured=False)
    try:
        store = S3StateStore.from_credentials(credentials, s3=s3, timeout=timeout)
    except BackendUnavailable as ex:
        return Unavailable(str(ex))
    return Available(store)


@dataclass(frozen=True)
class Ready:
    backend: str
    degraded: bool = False
    seeded: bool = False


def ensure_admin(state: AppState) -> AppState:
    """Backfill the Admin account for documents written by older clients.

    Returns a new AppState when a change was needed, otherwise `state` itself.
    """
    users = state.users
    if users is None:
        return state
    admin = users.get("Admin")
    if isinstance(admin, dict) and "adminLobs" in admin:
        return state

    doc = copy.deepcopy(state.root)
    if not isinstance(admin, dict):
        doc["users"]["Admin"] = copy.deepcopy(DEFAULT_DOCUMENT["users"]["Admin"])
        logger.info("Added missing Admin account to loaded state")
    else:
        doc["users"]["Admin"]["adminLobs"] = 0
        logger.info("Initialized missing adminLobs counter on Admin account")
    return AppState(doc)


class Bootstrapper:
    """
    Owns the process-wide AppState cache and the active backend.

    - `initialize(preferred)` selects the backend, loads or seeds the document
      and always ends Ready; falling back to the local file puts the process
      in degraded mode.
    - `get_state()` serves reads from the cache only, never touching the backend.
    - `replace_state(doc)` swaps the cache first, then persists. A failed save
      leaves the new document in the cache and raises `PersistenceFailed`.

    Writers are serialized by a single lock, so concurrent replacements apply
    in arrival order and the last one wins. There is no merge and no conflict
    detection.
    """

    def __init__(
        self,
        local: FileStateStore,
        *,
        default_factory: Callable[[], AppState] = AppState.default,
        ensure_admin: bool = True,
    ) -> None:
        self._local = local
        self._default_factory = default_factory
        self._ensure_admin = ensure_admin
        self._store: Optional[StateStore] = None
        self._state: Optional[AppState] = None
        self._ready: Optional[Ready] = None
        self._init_lock = threading.Lock()
        self._write_lock = threading.Lock()

    # -------- Introspection --------
    @property
    def ready(self) -> bool:
        return self._ready is not None

    @property
    def degraded(self) -> bool:
        return self._ready is not None and self._ready.degraded

    @property
    def backend_name(self) -> Optional[str]:
        return self._store.name if self._store is not None else None

    # -------- Startup --------
    def initialize(self, preferred: Optional[ProbeResult] = None) -> Ready:
        with self._init_lock:
            if self._ready is not None:
                return self._ready

            degraded = False
            if isinstance(preferred, Available):
                result = self._init_remote(preferred.store)
                if result is not None:
                    return result
                degraded = True
            elif isinstance(preferred, Unavailable):
                if preferred.configured:
                    logger.warning("Remote backend unavailable (%s); using local file", preferred.reason)
                    degraded = True
                else:
                    logger.info("Remote backend not configured; using local file")

            return self._init_local(degraded=degraded)

    def _init_remote(self, store: StateStore) -> Optional[Ready]:
        seeded = False
        try:
            state = store.load()
        except NotFound:
            state = self._default_factory()
            try:
                store.save(state)
            except BackendUnavailable as ex:
                logger.warning("Seeding %s backend failed (%s); falling back to local file", store.name, ex)
                return None
            seeded = True
            logger.info("No state on %s backend; seeded default document", store.name)
        except ParseError as ex:
            # Never overwrite a remote document we could not read
            logger.error("Stored state on %s backend is unreadable (%s); falling back to local file", store.name, ex)
            return None
        except BackendUnavailable as ex:
            logger.warning("Remote backend unavailable (%s); falling back to local file", ex)
            return None
        return self._adopt(store, state, degraded=False, seeded=seeded)

    def _init_local(self, *, degraded: bool) -> Ready:
        store = self._local
        seeded = False
        try:
            state = store.load()
        except NotFound:
            logger.info("No state file at %s; seeding default document", store.path)
            state = self._seed(store)
            seeded = True
        except ParseError as ex:
            logger.error("State file %s is corrupt (%s); backing it up and seeding default", store.path, ex)
            try:
                store.backup_corrupt()
            except BackendUnavailable as bex:
                # Keep the corrupt file untouched; serve the default from memory only
                logger.error("%s", bex)
                return self._adopt(store, self._default_factory(), degraded=True, seeded=True)
            state = self._seed(store)
            seeded = True
        except BackendUnavailable as ex:
            logger.error("Cannot read state file (%s); serving default document from memory", ex)
            state = self._default_factory()
            seeded = True
            degraded = True
        return self._adopt(store, state, degraded=degraded, seeded=seeded)

    def _seed(self, store: StateStore) -> AppState:
        state = self._default_factory()
        try:
            store.save(state)
        except BackendUnavailable as ex:
            logger.error("Failed to persist default document: %s", ex)
        return state

    def _adopt(self, store: StateStore, state: AppState, *, degraded: bool, seeded: bool) -> Ready:
        if self._ensure_admin:
            state = ensure_admin(state)
        self._store = store
        self._state = state
        self._ready = Ready(backend=store.name, degraded=degraded, seeded=seeded)
        if degraded:
            logger.warning("State ready on %s backend in DEGRADED mode", store.name)
        else:
            logger.info("State ready on %s backend", store.name)
        return self._ready

    # -------- Serving --------
    def get_state(self) -> AppState:
        state = self._state
        if state is None:
            raise StateNotReady("State is still loading")
        return state

    def replace_state(self, doc: AppState | Mapping[str, Any]) -> None:
        state = doc if isinstance(doc, AppState) else AppState(dict(doc))
        with self._write_lock:
            if self._store is None or self._state is None:
                raise StateNotReady("State is still loading")
            self._state = state
            try:
                self._store.save(state)
            except StateStoreError as ex:
                logger.error("Saving state to %s backend failed: %s", self._store.name, ex)
                raise PersistenceFailed(str(ex)) from ex

        users = state.users or {}
        admin = users.get("Admin")
        admin_lobs = admin.get("adminLobs", "N/A") if isinstance(admin, dict) else "N/A"
        logger.info("State saved to %s backend (admin lobs: %s)", self._store.name, admin_lobs)
