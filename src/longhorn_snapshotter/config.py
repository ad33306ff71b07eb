from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping
import math
import os

DEFAULT_BACKEND_URL = "http://longhorn-backend.longhorn-system.svc:9500"

_CONFIG_MAP_KEYS = {
    "backendURL": "backend_url",
    "requestTimeoutSeconds": "request_timeout_seconds",
    "probeRetries": "probe_retries",
    "probeWorkers": "probe_workers",
}


def _optional_float(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class SnapshotterConfig:
    backend_url: str = os.getenv("LHSNAP_BACKEND_URL", DEFAULT_BACKEND_URL)
    request_timeout_seconds: float | None = _optional_float(os.getenv("LHSNAP_REQUEST_TIMEOUT_SECONDS"))
    probe_retries: int = int(os.getenv("LHSNAP_PROBE_RETRIES", "0"))
    probe_workers: int = int(os.getenv("LHSNAP_PROBE_WORKERS", "1"))
    kubeconfig_path: str | None = os.getenv("LHSNAP_KUBECONFIG", "").strip() or None
    kube_context: str | None = os.getenv("LHSNAP_KUBE_CONTEXT") or None

    def with_overrides(self, config_map: Mapping[str, str] | None) -> SnapshotterConfig:
        """Apply the orchestrator's plugin config map on top of this config.

        Unknown keys are ignored so that orchestrator-level settings shared by
        every plugin do not break initialization.
        """
        changes: dict[str, object] = {}
        for key, value in (config_map or {}).items():
            field_name = _CONFIG_MAP_KEYS.get(key)
            if field_name is None:
                continue
            try:
                changes[field_name] = _parse_field(field_name, value)
            except ValueError as error:
                raise ValueError(f"Invalid value {value!r} for config key '{key}': {error}") from error

        updated = replace(self, **changes) if changes else self
        validate_config(updated)
        return updated


def _parse_field(field_name: str, value: str) -> object:
    if field_name == "backend_url":
        stripped = value.strip()
        if not stripped:
            raise ValueError("backend URL must not be empty")
        return stripped
    if field_name == "request_timeout_seconds":
        return _optional_float(value)
    return int(value)


def validate_config(config: SnapshotterConfig) -> None:
    if not config.backend_url.strip():
        raise ValueError("backend_url must not be empty")
    timeout = config.request_timeout_seconds
    if timeout is not None and (not math.isfinite(timeout) or timeout <= 0):
        raise ValueError("request_timeout_seconds must be a positive finite number")
    if config.probe_retries < 0:
        raise ValueError("probe_retries must be >= 0")
    if config.probe_workers <= 0:
        raise ValueError("probe_workers must be positive")
