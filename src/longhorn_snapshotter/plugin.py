from __future__ import annotations

import logging

from .config import SnapshotterConfig
from .snapshotter import VolumeSnapshotter

PLUGIN_NAME = "longhorn.io/longhorn"


def new_volume_snapshotter(logger: logging.Logger | logging.LoggerAdapter | None = None) -> VolumeSnapshotter:
    """Factory the plugin host registers under ``PLUGIN_NAME``.

    Published as the ``longhorn.io/longhorn`` entry point of the
    ``velero.plugins.volume_snapshotter`` group. The returned snapshotter is
    not connected to the cluster yet; the host calls ``init`` with the
    VolumeSnapshotLocation config.
    """
    return VolumeSnapshotter(config=SnapshotterConfig(), logger=logger or logging.getLogger(PLUGIN_NAME))
