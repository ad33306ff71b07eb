from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable
from urllib.parse import quote

import requests

from .config import DEFAULT_BACKEND_URL
from .errors import BackendError, BackendUnreachable, DecodeError
from .models import BackendSnapshot, BackendVolume, ProbeResult

log = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
INCONCLUSIVE_PROBE_STATUSES = frozenset({429})


class BackendClient:
    """Thin client for the Longhorn manager's volume and snapshot actions."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or session_factory()
        self.session_factory = session_factory
        self._owner_thread = threading.get_ident()
        self._worker_sessions = threading.local()

    def list_volumes(self) -> list[BackendVolume]:
        payload = self._request_json("GET", self._url("/v1/volumes"), operation="list volumes")
        if not isinstance(payload, dict):
            raise DecodeError(f"Volume listing is not a JSON object: {type(payload).__name__}")

        data = payload.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise DecodeError(f"Volume listing 'data' field is not a list: {type(data).__name__}")

        volumes: list[BackendVolume] = []
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                raise DecodeError(f"Volume listing entry {index} is not a JSON object")
            actions = item.get("actions") or {}
            if not isinstance(actions, dict):
                raise DecodeError(f"Volume listing entry {index} has a malformed 'actions' field")
            volumes.append(
                BackendVolume(
                    id=_string_field(item, "id"),
                    name=_string_field(item, "name"),
                    snapshot_get_url=_string_field(actions, "snapshotGet"),
                )
            )
        return volumes

    def create_snapshot(self, volume_id: str) -> BackendSnapshot:
        payload = self._request_json(
            "POST",
            self._volume_action_url(volume_id, "snapshotCreate"),
            operation=f"create a snapshot of volume '{volume_id}'",
            data="{}",
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )
        if not isinstance(payload, dict):
            raise DecodeError(f"Snapshot create response for volume '{volume_id}' is not a JSON object")
        return BackendSnapshot(id=_string_field(payload, "id"), name=_string_field(payload, "name"))

    def probe_snapshot(self, volume: BackendVolume, snapshot_name: str) -> ProbeResult:
        """Ask one volume whether it owns ``snapshot_name``.

        Never raises for backend failures: a non-success answer means the
        snapshot is not on this volume. Transport failures, 5xx and 429 are
        flagged as inconclusive so the caller can decide whether to retry.
        """
        if not volume.snapshot_get_url:
            return ProbeResult(found=False, reason="volume exposes no snapshotGet action")

        log.debug("Probing volume %s for snapshot %s", volume.label, snapshot_name)
        try:
            response = self._thread_session().post(
                volume.snapshot_get_url,
                data=_name_body(snapshot_name),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as error:
            return ProbeResult(found=False, inconclusive=True, reason=_error_message(error))

        if _is_success(response.status_code):
            return ProbeResult(found=True, status_code=response.status_code)
        return ProbeResult(
            found=False,
            inconclusive=response.status_code >= 500 or response.status_code in INCONCLUSIVE_PROBE_STATUSES,
            status_code=response.status_code,
            reason=f"HTTP status {response.status_code}",
        )

    def delete_snapshot(self, volume_id: str, snapshot_name: str) -> None:
        self._request(
            "POST",
            self._volume_action_url(volume_id, "snapshotDelete"),
            operation=f"delete snapshot '{snapshot_name}' from volume '{volume_id}'",
            data=_name_body(snapshot_name),
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )

    def _thread_session(self) -> requests.Session:
        # requests.Session is not thread-safe; threads other than the creator get their own.
        if threading.get_ident() == self._owner_thread:
            return self.session
        session = getattr(self._worker_sessions, "session", None)
        if session is None:
            session = self.session_factory()
            self._worker_sessions.session = session
        return session

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _volume_action_url(self, volume_id: str, action: str) -> str:
        return self._url(f"/v1/volumes/{quote(volume_id, safe='')}?action={action}")

    def _request(self, method: str, url: str, *, operation: str, **kwargs: Any) -> requests.Response:
        log.debug("Backend request %s %s", method, url)
        try:
            response = self._thread_session().request(method, url, timeout=self.timeout_seconds, **kwargs)
        except requests.RequestException as error:
            raise BackendUnreachable(
                f"Backend is unreachable while trying to {operation} ({method} {url}): {_error_message(error)}"
            ) from error

        if not _is_success(response.status_code):
            raise BackendError(operation=operation, status_code=response.status_code, body=response.text)
        return response

    def _request_json(self, method: str, url: str, *, operation: str, **kwargs: Any) -> Any:
        response = self._request(method, url, operation=operation, **kwargs)
        try:
            return response.json()
        except ValueError as error:
            raise DecodeError(f"Backend returned malformed JSON while trying to {operation}: {error}") from error


def _name_body(snapshot_name: str) -> str:
    return json.dumps({"name": snapshot_name})


def _string_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"Backend field '{key}' is not a string: {value!r}")
    return value


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
