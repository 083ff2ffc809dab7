from __future__ import annotations

import copy
import json
from typing import Any, Dict, Optional

from pydantic import RootModel

from .errors import ParseError


def _avatar(style: str, seed: str) -> str:
    return f"https://api.dicebear.com/7.x/{style}/svg?seed={seed}"


# Seed document used only when no prior state exists anywhere.
DEFAULT_DOCUMENT: Dict[str, Any] = {
    "users": {
        "Thomas": {
            "password": "nacke",
            "image": _avatar("notionists", "Thomas"),
            "lastSeenScore": 0,
            "received": {"Emil": 0, "Marius": 0},
            "badges": [],
            "autoLogin": False,
        },
        "Emil": {
            "password": "nacke",
            "image": _avatar("notionists", "Emil"),
            "lastSeenScore": 0,
            "received": {"Thomas": 0, "Marius": 0},
            "badges": [],
            "autoLogin": False,
        },
        "Marius": {
            "password": "nacke",
            "image": _avatar("notionists", "Marius"),
            "lastSeenScore": 0,
            "received": {"Thomas": 0, "Emil": 0},
            "badges": [],
            "autoLogin": False,
        },
        "Admin": {
            "password": "nacke",
            "image": _avatar("micah", "Admin"),
            "lastSeenScore": 0,
            "received": {},
            "adminLobs": 0,
            "badges": [],
            "autoLogin": False,
        },
    },
    "logs": [],
    "rewards": [
        {"id": 1, "name": "Kaffeepause gespendet", "cost": 20, "desc": "Ein leckerer Kaffee aufs Haus."},
        {"id": 2, "name": "Pizza-Mittagessen", "cost": 50, "desc": "Pizza für das Team, bezahlt aus deinem Lob-Konto."},
        {"id": 3, "name": "Extra Urlaubstag", "cost": 100, "desc": "Nimm dir einen Tag frei. Gönn es dir!"},
    ],
}


class AppState(RootModel[Dict[str, Any]]):
    """
    The whole application document, persisted and served as a single unit.

    Informal sections
    - users: user name -> opaque user record (credentials, image, counters,
      per-peer `received` counters, badges, flags).
    - logs: ordered list of opaque event records.
    - rewards: ordered list of reward definitions.

    Notes
    - The model wraps an arbitrary JSON object and performs no coercion:
      whatever the client wrote is what gets persisted and returned.
    """

    @classmethod
    def default(cls) -> "AppState":
        """Fresh copy of the built-in seed document."""
        return cls(copy.deepcopy(DEFAULT_DOCUMENT))

    @property
    def users(self) -> Optional[Dict[str, Any]]:
        users = self.root.get("users")
        return users if isinstance(users, dict) else None


def dump_json(state: AppState, *, indent: Optional[int] = None) -> bytes:
    # Key order is meaningful to the client (user display order), so no sort_keys
    if indent is None:
        text = json.dumps(state.root, separators=(",", ":"), ensure_ascii=False)
    else:
        text = json.dumps(state.root, indent=indent, ensure_ascii=False)
    return text.encode("utf-8")


def load_json(data: bytes) -> AppState:
    """Parse persisted bytes into an AppState.

    Raises ParseError if the bytes are not UTF-8 JSON or the top-level value
    is not an object.
    """
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        raise ParseError(f"Persisted state is not valid JSON: {ex}") from ex
    if not isinstance(raw, dict):
        raise ParseError(f"Persisted state must be a JSON object, got {type(raw).__name__}")
    return AppState(raw)
