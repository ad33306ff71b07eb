from __future__ import annotations

import importlib
import logging
from pathlib import Path
import tomllib

from longhorn_snapshotter.plugin import PLUGIN_NAME, new_volume_snapshotter
from longhorn_snapshotter.snapshotter import VolumeSnapshotter

_PYPROJECT = Path(__file__).resolve().parents[1] / "pyproject.toml"


def test_entry_point_publishes_factory_under_plugin_name() -> None:
    project = tomllib.loads(_PYPROJECT.read_text(encoding="utf-8"))["project"]
    target = project["entry-points"]["velero.plugins.volume_snapshotter"][PLUGIN_NAME]

    module_name, attribute = target.split(":")
    assert getattr(importlib.import_module(module_name), attribute) is new_volume_snapshotter
    assert PLUGIN_NAME == "longhorn.io/longhorn"


def test_new_volume_snapshotter_is_uninitialized_and_uses_given_logger() -> None:
    logger = logging.getLogger("velero-plugin-test")

    snapshotter = new_volume_snapshotter(logger)

    assert isinstance(snapshotter, VolumeSnapshotter)
    assert snapshotter.core_api is None
    assert snapshotter.log is logger


def test_new_volume_snapshotter_defaults_to_plugin_logger() -> None:
    assert new_volume_snapshotter().log is logging.getLogger(PLUGIN_NAME)
