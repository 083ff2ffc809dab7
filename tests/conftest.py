import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `state.*` / `common.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def sample_doc():
    return {
        "users": {
            "Anna": {
                "password": "pw",
                "image": "https://example.test/anna.svg",
                "lastSeenScore": 3,
                "received": {"Ben": 2},
                "badges": ["first_lob"],
                "autoLogin": True,
            },
            "Ben": {"password": "pw", "received": {"Anna": 1}, "badges": []},
        },
        "logs": [{"from": "Ben", "to": "Anna", "amount": 2, "note": "Grüße"}],
        "rewards": [{"id": 7, "name": "Kuchen", "cost": 10, "desc": "Ein Stück Kuchen."}],
    }
