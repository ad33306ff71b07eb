from __future__ import annotations

from dataclasses import dataclass


def canonical_identifier(identifier: str | None, name: str | None) -> str | None:
    """Return the identifier Longhorn should be addressed by.

    The backend populates ``id``, ``name`` or both depending on the resource and
    version. A non-empty ``id`` always wins, ``name`` is the fallback, and
    ``None`` means the resource cannot be addressed at all.
    """
    if identifier:
        return identifier
    if name:
        return name
    return None


@dataclass(frozen=True)
class BackendVolume:
    id: str
    name: str
    snapshot_get_url: str

    @property
    def canonical_id(self) -> str | None:
        return canonical_identifier(self.id, self.name)

    @property
    def label(self) -> str:
        return self.canonical_id or "<unnamed volume>"


@dataclass(frozen=True)
class BackendSnapshot:
    id: str
    name: str

    @property
    def canonical_id(self) -> str | None:
        return canonical_identifier(self.id, self.name)


@dataclass(frozen=True)
class ProbeResult:
    found: bool
    inconclusive: bool = False
    status_code: int | None = None
    reason: str = ""
