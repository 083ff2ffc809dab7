from __future__ import annotations

from typing import Protocol

from .models import AppState


class StateStore(Protocol):
    """
    Whole-document persistence for a single AppState.

    - `load()` returns the last saved document. Raises `NotFound` if nothing
      was ever written, `BackendUnavailable` on configuration/I/O/network
      failure and `ParseError` when the stored bytes are not an AppState.
    - `save(state)` replaces the stored document wholesale (never a merge).
      Raises `BackendUnavailable` on failure.
    """

    name: str

    def load(self) -> AppState: ...

    def save(self, state: AppState) -> None: ...
