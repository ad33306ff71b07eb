from __future__ import annotations


class SnapshotterError(RuntimeError):
    """Base class for every failure surfaced to the orchestrator."""


class BackendUnreachable(SnapshotterError):
    """Raised when the storage backend cannot be reached at the transport level."""


class BackendError(SnapshotterError):
    def __init__(self, *, operation: str, status_code: int, body: str = "") -> None:
        detail = body.strip()
        if len(detail) > 200:
            detail = f"{detail[:200]}..."
        message = f"Backend request to {operation} failed with HTTP status {status_code}"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.operation = operation
        self.status_code = status_code


class DecodeError(SnapshotterError):
    """Raised when the backend answers with a payload that cannot be parsed."""


class EmptySnapshotID(SnapshotterError):
    """Raised when the backend creates a snapshot but returns neither an id nor a name."""


class VolumeNotFoundForSnapshot(SnapshotterError):
    def __init__(self, *, snapshot_id: str, scanned_volumes: int, inconclusive_volumes: int = 0) -> None:
        message = f"Cannot find the volume owning snapshot '{snapshot_id}' after probing {scanned_volumes} volume(s)"
        if inconclusive_volumes:
            message = (
                f"{message}; {inconclusive_volumes} probe(s) failed without a definite answer, "
                "retry the deletion once the backend is healthy"
            )
        super().__init__(message)
        self.snapshot_id = snapshot_id
        self.scanned_volumes = scanned_volumes
        self.inconclusive_volumes = inconclusive_volumes


class MissingCSISpec(SnapshotterError):
    """Raised when a PersistentVolume is not provisioned by a CSI driver."""


class MissingVolumeHandle(SnapshotterError):
    """Raised when a PersistentVolume's CSI spec carries no volume handle."""


class MissingFSType(SnapshotterError):
    """Raised when a PersistentVolume's CSI spec carries no filesystem type."""


class VolumeNotFound(SnapshotterError):
    """Raised when no PersistentVolume exists for the requested volume ID."""


class ClusterAPIError(SnapshotterError):
    """Raised when the Kubernetes API rejects a PersistentVolume lookup for a reason other than absence."""


class ClusterConfigError(SnapshotterError):
    """Raised when the Kubernetes API connection cannot be established."""


class UnsupportedOperation(SnapshotterError, NotImplementedError):
    """Raised for orchestrator capabilities the backend cannot provide."""
