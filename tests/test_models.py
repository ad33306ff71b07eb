from __future__ import annotations

import pytest

from longhorn_snapshotter.models import BackendSnapshot, BackendVolume, canonical_identifier


@pytest.mark.parametrize(
    ("identifier", "name", "expected"),
    [
        ("snap-id", "snap-name", "snap-id"),
        ("snap-id", "", "snap-id"),
        ("", "snap-name", "snap-name"),
        (None, "snap-name", "snap-name"),
        ("", "", None),
        (None, None, None),
    ],
)
def test_canonical_identifier_prefers_id_over_name(identifier: str | None, name: str | None, expected: str | None) -> None:
    assert canonical_identifier(identifier, name) == expected


def test_backend_snapshot_canonical_id_ignores_name_when_id_present() -> None:
    assert BackendSnapshot(id="c-1a2b3c", name="backup-2026").canonical_id == "c-1a2b3c"


def test_backend_volume_label_falls_back_for_unaddressable_entries() -> None:
    volume = BackendVolume(id="", name="", snapshot_get_url="http://backend/v1/volumes/x?action=snapshotGet")

    assert volume.canonical_id is None
    assert volume.label == "<unnamed volume>"
