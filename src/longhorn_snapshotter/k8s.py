from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from kubernetes import client, config
from kubernetes.client import ApiException

from .errors import ClusterAPIError, ClusterConfigError, VolumeNotFound


@dataclass(frozen=True)
class ClusterClients:
    api_client: client.ApiClient
    core_api: client.CoreV1Api


def load_cluster_clients(*, kubeconfig_path: str | None = None, context: str | None = None) -> ClusterClients:
    """Build Kubernetes API handles from ambient credentials.

    Velero runs plugins inside its own pod, so the service account token is
    the normal source. A kubeconfig is only used for out-of-cluster runs.
    """
    try:
        if kubeconfig_path:
            config.load_kube_config(config_file=str(Path(kubeconfig_path).expanduser()), context=context)
        else:
            config.load_incluster_config()
    except Exception as error:  # pylint: disable=broad-except
        reason = str(error).strip() or error.__class__.__name__
        source = f"kubeconfig '{kubeconfig_path}'" if kubeconfig_path else "in-cluster config"
        raise ClusterConfigError(f"Error retrieving {source}: {reason}") from error

    api_client = client.ApiClient()
    return ClusterClients(api_client=api_client, core_api=client.CoreV1Api(api_client))


def read_persistent_volume(
    core_api: client.CoreV1Api,
    name: str,
    *,
    request_timeout_seconds: float | None = None,
) -> client.V1PersistentVolume:
    kwargs = {"_request_timeout": request_timeout_seconds} if request_timeout_seconds else {}
    try:
        return core_api.read_persistent_volume(name=name, **kwargs)
    except ApiException as error:
        if error.status == 404:
            raise VolumeNotFound(f"Unable to retrieve PersistentVolume '{name}': it does not exist") from error
        raise ClusterAPIError(
            _format_api_exception_message(
                operation=f"read PersistentVolume '{name}'",
                hint="Verify RBAC allows get on persistentvolumes for the Velero service account.",
                error=error,
            )
        ) from error


def _format_api_exception_message(*, operation: str, hint: str, error: ApiException) -> str:
    status = error.status if error.status is not None else "unknown"
    reason = error.reason or "no reason provided"
    return f"Kubernetes API call failed while trying to {operation}: API status {status} ({reason}). {hint}"
