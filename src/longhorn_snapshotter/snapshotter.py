from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
import copy
import itertools
import logging
from typing import Any, Callable, Mapping

from kubernetes import client

from .backend import BackendClient
from .config import SnapshotterConfig, validate_config
from .errors import (
    ClusterConfigError,
    EmptySnapshotID,
    MissingCSISpec,
    MissingFSType,
    MissingVolumeHandle,
    UnsupportedOperation,
    VolumeNotFoundForSnapshot,
)
from .k8s import ClusterClients, load_cluster_clients, read_persistent_volume
from .models import BackendVolume, ProbeResult

log = logging.getLogger(__name__)

ClusterLoader = Callable[[SnapshotterConfig], ClusterClients]


def default_cluster_loader(config: SnapshotterConfig) -> ClusterClients:
    return load_cluster_clients(
        kubeconfig_path=config.kubeconfig_path,
        context=config.kube_context,
    )


@dataclass(frozen=True)
class OwnerSearch:
    owner: BackendVolume | None
    probed: int
    inconclusive: int


class VolumeSnapshotter:
    """Velero volume snapshotter backed by Longhorn's REST API.

    Every public method is a self-contained transaction: backend state is
    re-read on each call and nothing is cached between calls.
    """

    def __init__(
        self,
        *,
        config: SnapshotterConfig | None = None,
        backend: BackendClient | None = None,
        core_api: client.CoreV1Api | None = None,
        cluster_loader: ClusterLoader = default_cluster_loader,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._base_config = config or SnapshotterConfig()
        validate_config(self._base_config)
        self.config = self._base_config
        self._backend_injected = backend is not None
        self.backend = backend or _build_backend(self.config)
        self.core_api = core_api
        self.cluster_loader = cluster_loader
        self.log = logger or log

    def init(self, config: Mapping[str, str] | None = None) -> None:
        """Prepare the snapshotter from Velero's plugin config map.

        Velero re-initializes plugins, so this may run many times per process;
        each run starts from the construction-time config and reloads the
        cluster handles.
        """
        self.config = self._base_config.with_overrides(config)
        if not self._backend_injected:
            self.backend = _build_backend(self.config)

        try:
            clients = self.cluster_loader(self.config)
        except ClusterConfigError:
            raise
        except Exception as error:  # pylint: disable=broad-except
            reason = str(error).strip() or error.__class__.__name__
            raise ClusterConfigError(f"Error retrieving kubernetes client: {reason}") from error
        self.core_api = clients.core_api
        self.log.info("Initialized Longhorn volume snapshotter against backend %s", self.config.backend_url)

    def create_volume_from_snapshot(
        self,
        snapshot_id: str,
        volume_type: str,
        volume_az: str,
        iops: int | None = None,
    ) -> str:
        self.log.info(
            "CreateVolumeFromSnapshot for snapshotID: %s, volumeType: %s, volumeAZ: %s, iops: %s",
            snapshot_id,
            volume_type,
            volume_az,
            iops,
        )
        raise UnsupportedOperation(
            f"Restoring a volume from Longhorn snapshot '{snapshot_id}' is not supported by this plugin"
        )

    def get_volume_info(self, volume_id: str, volume_az: str | None = None) -> tuple[str, int | None]:
        """Return the CSI filesystem type as the volume type; IOPS is always ``None``."""
        self.log.info("GetVolumeInfo for volumeID: %s, volumeAZ: %s", volume_id, volume_az)
        if self.core_api is None:
            raise ClusterConfigError("Kubernetes client is not initialized; call init() first")

        pv = read_persistent_volume(
            self.core_api,
            volume_id,
            request_timeout_seconds=self.config.request_timeout_seconds,
        )
        csi = pv.spec.csi if pv.spec else None
        if csi is None:
            raise MissingCSISpec(f"Unable to retrieve CSI spec from PersistentVolume '{volume_id}'")
        if not csi.fs_type:
            raise MissingFSType(f"Unable to retrieve fs type from PersistentVolume '{volume_id}'")
        return csi.fs_type, None

    def create_snapshot(
        self,
        volume_id: str,
        volume_az: str | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> str:
        self.log.info("CreateSnapshot for volumeID: %s, volumeAZ: %s, tags: %s", volume_id, volume_az, dict(tags or {}))
        if tags:
            # Longhorn snapshots carry no tags or labels.
            self.log.debug("Not forwarding %d tag(s) for volume %s", len(tags), volume_id)

        snapshot = self.backend.create_snapshot(volume_id)
        snapshot_id = snapshot.canonical_id
        if snapshot_id is None:
            raise EmptySnapshotID(f"Backend created a snapshot of volume '{volume_id}' but returned an empty snapshot ID")

        self.log.info("CreateSnapshot for volumeID %s with snapshotID: %s", volume_id, snapshot_id)
        return snapshot_id

    def delete_snapshot(self, snapshot_id: str) -> None:
        self.log.info("DeleteSnapshot for snapshotID: %s", snapshot_id)

        volumes = self.backend.list_volumes()
        search = self._find_owner(volumes, snapshot_id)
        volume_id = search.owner.canonical_id if search.owner else None
        if volume_id is None:
            raise VolumeNotFoundForSnapshot(
                snapshot_id=snapshot_id,
                scanned_volumes=search.probed,
                inconclusive_volumes=search.inconclusive,
            )

        self.backend.delete_snapshot(volume_id, snapshot_id)
        self.log.info("DeleteSnapshot for snapshotID %s on volumeID %s", snapshot_id, volume_id)

    def get_volume_id(self, pv: Mapping[str, Any]) -> str:
        csi = _csi_spec(pv)
        handle = csi.get("volumeHandle")
        if not handle:
            raise MissingVolumeHandle(f"Unable to retrieve volume handle from PersistentVolume '{_pv_name(pv)}'")
        return str(handle)

    def set_volume_id(self, pv: Mapping[str, Any], volume_id: str) -> dict[str, Any]:
        if not volume_id:
            raise ValueError("volume_id must not be empty")
        _csi_spec(pv)

        updated = copy.deepcopy(dict(pv))
        updated["spec"]["csi"]["volumeHandle"] = volume_id
        return updated

    def _find_owner(self, volumes: list[BackendVolume], snapshot_id: str) -> OwnerSearch:
        if self.config.probe_workers > 1 and len(volumes) > 1:
            return self._find_owner_concurrently(volumes, snapshot_id)

        probed = 0
        inconclusive = 0
        for volume in volumes:
            result = self._probe(volume, snapshot_id)
            probed += 1
            if result.found:
                return OwnerSearch(owner=volume, probed=probed, inconclusive=inconclusive)
            if result.inconclusive:
                inconclusive += 1
        return OwnerSearch(owner=None, probed=probed, inconclusive=inconclusive)

    def _find_owner_concurrently(self, volumes: list[BackendVolume], snapshot_id: str) -> OwnerSearch:
        # Snapshot names are unique cluster-wide, so whichever owner answers first is the owner.
        # At most probe_workers probes are in flight; the rest are only submitted as slots free up,
        # so nothing is queued once the owner is known. In-flight probes are abandoned, not awaited.
        probed = 0
        inconclusive = 0
        remaining = iter(volumes)
        executor = ThreadPoolExecutor(max_workers=self.config.probe_workers, thread_name_prefix="snapshot-probe")
        try:
            in_flight: dict[Future[ProbeResult], BackendVolume] = {
                executor.submit(self._probe, volume, snapshot_id): volume
                for volume in itertools.islice(remaining, self.config.probe_workers)
            }
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    volume = in_flight.pop(future)
                    result = future.result()
                    probed += 1
                    if result.found:
                        return OwnerSearch(owner=volume, probed=probed, inconclusive=inconclusive)
                    if result.inconclusive:
                        inconclusive += 1
                    next_volume = next(remaining, None)
                    if next_volume is not None:
                        in_flight[executor.submit(self._probe, next_volume, snapshot_id)] = next_volume
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return OwnerSearch(owner=None, probed=probed, inconclusive=inconclusive)

    def _probe(self, volume: BackendVolume, snapshot_id: str) -> ProbeResult:
        attempts = self.config.probe_retries + 1
        for attempt in range(1, attempts + 1):
            result = self.backend.probe_snapshot(volume, snapshot_id)
            if result.found or not result.inconclusive:
                return result
            if attempt < attempts:
                self.log.debug(
                    "Retrying inconclusive probe of volume %s for snapshot %s (%s)",
                    volume.label,
                    snapshot_id,
                    result.reason,
                )

        self.log.warning(
            "Probe of volume %s for snapshot %s failed after %d attempt(s) (%s); treating the volume as not owning it",
            volume.label,
            snapshot_id,
            attempts,
            result.reason,
        )
        return result


def _build_backend(config: SnapshotterConfig) -> BackendClient:
    return BackendClient(base_url=config.backend_url, timeout_seconds=config.request_timeout_seconds)


def _csi_spec(pv: Mapping[str, Any]) -> Mapping[str, Any]:
    spec = pv.get("spec")
    csi = spec.get("csi") if isinstance(spec, Mapping) else None
    if not isinstance(csi, Mapping):
        raise MissingCSISpec(f"Unable to retrieve CSI spec from PersistentVolume '{_pv_name(pv)}'")
    return csi


def _pv_name(pv: Mapping[str, Any]) -> str:
    metadata = pv.get("metadata")
    if isinstance(metadata, Mapping) and metadata.get("name"):
        return str(metadata["name"])
    return "<unnamed>"

