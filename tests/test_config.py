from __future__ import annotations

import pytest

from longhorn_snapshotter.config import DEFAULT_BACKEND_URL, SnapshotterConfig


def _config(**overrides: object) -> SnapshotterConfig:
    values: dict[str, object] = {
        "backend_url": DEFAULT_BACKEND_URL,
        "request_timeout_seconds": None,
        "probe_retries": 0,
        "probe_workers": 1,
        "kubeconfig_path": None,
        "kube_context": None,
    }
    values.update(overrides)
    return SnapshotterConfig(**values)  # type: ignore[arg-type]


def test_with_overrides_applies_recognised_config_map_keys() -> None:
    updated = _config().with_overrides(
        {
            "backendURL": " http://longhorn-backend.storage.svc:9500 ",
            "requestTimeoutSeconds": "7.5",
            "probeRetries": "2",
            "probeWorkers": "4",
        }
    )

    assert updated.backend_url == "http://longhorn-backend.storage.svc:9500"
    assert updated.request_timeout_seconds == 7.5
    assert updated.probe_retries == 2
    assert updated.probe_workers == 4


def test_with_overrides_ignores_unknown_keys_and_keeps_instance() -> None:
    config = _config()

    assert config.with_overrides({"region": "us-east-1"}) is config
    assert config.with_overrides(None) is config


def test_with_overrides_with_blank_timeout_disables_deadline() -> None:
    updated = _config(request_timeout_seconds=30.0).with_overrides({"requestTimeoutSeconds": ""})

    assert updated.request_timeout_seconds is None


@pytest.mark.parametrize(
    ("key", "value", "match"),
    [
        ("probeRetries", "many", "probeRetries"),
        ("probeRetries", "-1", "probe_retries"),
        ("probeWorkers", "0", "probe_workers"),
        ("requestTimeoutSeconds", "-3", "request_timeout_seconds"),
        ("requestTimeoutSeconds", "nan", "request_timeout_seconds"),
        ("requestTimeoutSeconds", "inf", "request_timeout_seconds"),
        ("backendURL", "  ", "backendURL"),
    ],
)
def test_with_overrides_with_invalid_value_raises_value_error(key: str, value: str, match: str) -> None:
    with pytest.raises(ValueError, match=match):
        _config().with_overrides({key: value})

