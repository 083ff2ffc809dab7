from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from typing import Any, Dict, Optional, Tuple

from common.config import Settings, load_settings
from common.log import configure_logging
from state.bootstrap import Bootstrapper, probe_remote
from state.errors import PersistenceFailed, StateNotReady
from state.file_store import FileStateStore


logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_BOOTSTRAPPER: Optional[Bootstrapper] = None
_BOOTSTRAPPER_LOCK = threading.Lock()


def _response(status: int, body: Any = None) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json", **CORS_HEADERS}
    out: Dict[str, Any] = {"statusCode": status, "headers": headers}
    out["body"] = "" if body is None else json.dumps(body, ensure_ascii=False)
    return out


def _error(status: int, message: str) -> Dict[str, Any]:
    return _response(status, {"success": False, "message": message})


def _route(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract (METHOD, path) from a REST API (v1) or HTTP API (v2) proxy event."""
    method = event.get("httpMethod")
    if not method:
        http = (event.get("requestContext") or {}).get("http") or {}
        method = http.get("method") or ""
    path = event.get("path") or event.get("rawPath") or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    return method.upper(), path


def _parse_body(event: Dict[str, Any]) -> Any:
    """Decode the JSON request body. Raises ValueError when it is not JSON."""
    raw = event.get("body")
    if raw is None:
        return None
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as ex:
            raise ValueError("body is not valid base64 UTF-8") from ex
    if raw == "":
        return None
    return json.loads(raw)


def _get_db(bootstrapper: Bootstrapper) -> Dict[str, Any]:
    try:
        state = bootstrapper.get_state()
    except StateNotReady:
        return _error(503, "State is still loading, try again shortly.")
    return _response(200, state.root)


def _post_update(bootstrapper: Bootstrapper, event: Dict[str, Any]) -> Dict[str, Any]:
    try:
        doc = _parse_body(event)
    except (ValueError, TypeError, RecursionError):
        return _error(400, "Invalid data sent.")
    if not isinstance(doc, dict):
        return _error(400, "Invalid data sent.")

    try:
        bootstrapper.replace_state(doc)
    except StateNotReady:
        return _error(503, "State is still loading, try again shortly.")
    except PersistenceFailed:
        return _error(500, "Saving failed.")
    return _response(200, {"success": True})


def handle_request(event: Dict[str, Any], bootstrapper: Bootstrapper) -> Dict[str, Any]:
    """
    Route one API Gateway proxy event.

    - GET  /db     -> 200 with the whole AppState, 503 while loading.
    - POST /update -> 400 unless the body is a JSON object; 200 {"success": true}
                      once stored, 500 if persisting failed (the new state is
                      still served from memory).
    - OPTIONS *    -> 204 for CORS preflight.
    """
    method, path = _route(event)
    if method == "OPTIONS":
        return _response(204)
    if path == "/db" and method == "GET":
        return _get_db(bootstrapper)
    if path == "/update" and method == "POST":
        return _post_update(bootstrapper, event)
    return _error(404, f"No route for {method} {path}")


def get_bootstrapper() -> Bootstrapper:
    """Process-wide Bootstrapper, initialized by the first caller (cold start).

    Concurrent callers get the same instance right away and see it as not
    ready until the first caller has finished loading.
    """
    global _BOOTSTRAPPER
    settings: Optional[Settings] = None
    with _BOOTSTRAPPER_LOCK:
        if _BOOTSTRAPPER is None:
            settings = load_settings()
            configure_logging(settings.log_level)
            _BOOTSTRAPPER = Bootstrapper(FileStateStore(settings.db_path), ensure_admin=settings.ensure_admin)
        bootstrapper = _BOOTSTRAPPER
    if settings is not None:
        try:
            bootstrapper.initialize(probe_remote(settings.remote_credentials, timeout=settings.remote_timeout))
        except Exception:
            # Let the next invocation retry the cold start
            with _BOOTSTRAPPER_LOCK:
                _BOOTSTRAPPER = None
            raise
    return bootstrapper


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry for the state API (API Gateway proxy integration).

    Environment:
    - LOB_DB_PATH (default: db.json), LOB_REMOTE_CREDENTIALS (JSON blob, optional)
    - LOB_REMOTE_TIMEOUT (seconds, default 5), LOB_ENSURE_ADMIN, LOG_LEVEL
    """
    return handle_request(event, get_bootstrapper())
