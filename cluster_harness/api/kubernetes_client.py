"""
ClusterClient over a live Kubernetes API server.

The desired-state resource is a namespaced custom object; pods and
persistent volume claims are found through the ownership labels the
operator stamps on them.
"""

import logging
from typing import Any, Dict, List, Optional

import kubernetes
import urllib3
from kubernetes import client, config
from kubernetes.stream import stream

from ..config import HarnessSettings
from ..errors import ClusterNotFound, FetchError, SpecRejected
from .client import ClusterClient
from .models import (
    RACK_LABEL,
    ClaimPhase,
    ClusterRef,
    ComputeUnit,
    ContainerResources,
    DesiredClusterSpec,
    LiveCluster,
    ObservedClusterStatus,
    ResourceQuantities,
    StorageClaim,
    VolumeMode,
    cluster_labels,
    label_selector,
)

logger = logging.getLogger("harness.kubernetes")

KIND = "AerospikeCluster"
REJECTED_STATUSES = (400, 409, 422)
OPTIONAL_SPEC_KEYS = ("aerospikeAccessControl", "aerospikeConfigSecret", "rackConfig")
# failures that never produced an HTTP response
TRANSPORT_ERRORS = (urllib3.exceptions.HTTPError, OSError)


def _quantities(values: Optional[Dict[str, Any]]) -> ResourceQuantities:
    values = values or {}
    return ResourceQuantities(cpu=str(values.get("cpu", "")), memory=str(values.get("memory", "")))


def _claim(pvc) -> StorageClaim:
    if pvc.metadata.deletion_timestamp is not None:
        phase = ClaimPhase.TERMINATING
    else:
        phase = ClaimPhase.BOUND
    mode = VolumeMode.BLOCK if (pvc.spec.volume_mode or "") == "Block" else VolumeMode.FILESYSTEM
    return StorageClaim(name=pvc.metadata.name, phase=phase, volume_mode=mode)


def _compute_unit(pod) -> ComputeUnit:
    containers = tuple(
        ContainerResources(
            name=c.name,
            requests=_quantities(c.resources.requests if c.resources else None),
            limits=_quantities(c.resources.limits if c.resources else None),
        )
        for c in pod.spec.containers
    )
    return ComputeUnit(
        name=pod.metadata.name,
        node_name=pod.spec.node_name or "",
        containers=containers,
        labels=dict(pod.metadata.labels or {}),
    )


class KubernetesClusterClient(ClusterClient):
    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        settings: Optional[HarnessSettings] = None,
    ):
        self.custom_api = custom_api
        self.core_api = core_api
        self.settings = settings or HarnessSettings()

    @classmethod
    def from_kubeconfig(cls, settings: Optional[HarnessSettings] = None, context: Optional[str] = None):
        """In-cluster credentials when running in a pod, the local kubeconfig otherwise."""
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(context=context)
        return cls(client.CustomObjectsApi(), client.CoreV1Api(), settings)

    # ------------------------------------------------------------------
    # Custom resource
    # ------------------------------------------------------------------

    def _coordinates(self) -> Dict[str, str]:
        return {
            "group": self.settings.group,
            "version": self.settings.version,
            "plural": self.settings.plural,
        }

    def _get_object(self, ref: ClusterRef) -> Dict[str, Any]:
        try:
            return self.custom_api.get_namespaced_custom_object(
                namespace=ref.namespace, name=ref.name, **self._coordinates()
            )
        except kubernetes.client.ApiException as e:
            if e.status == 404:
                raise ClusterNotFound(KIND, str(ref)) from e
            raise FetchError(f"get {ref}: {e.status} {e.reason}") from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"get {ref}: {e}") from e

    def _mutation_error(self, verb: str, ref: ClusterRef, e: "kubernetes.client.ApiException"):
        if e.status == 404:
            return ClusterNotFound(KIND, str(ref))
        if e.status in REJECTED_STATUSES:
            return SpecRejected(verb, str(ref), e.body or e.reason, e.status)
        return FetchError(f"{verb} {ref}: {e.status} {e.reason}")

    def get_status(self, ref: ClusterRef) -> ObservedClusterStatus:
        return ObservedClusterStatus.from_dict(ref, self._get_object(ref).get("status"))

    def get_cluster(self, ref: ClusterRef) -> LiveCluster:
        obj = self._get_object(ref)
        return LiveCluster(
            spec=DesiredClusterSpec.from_dict(ref, obj.get("spec", {})),
            resource_version=obj.get("metadata", {}).get("resourceVersion"),
        )

    def create(self, spec: DesiredClusterSpec) -> None:
        body = {
            "apiVersion": f"{self.settings.group}/{self.settings.version}",
            "kind": KIND,
            "metadata": {"name": spec.ref.name, "namespace": spec.ref.namespace},
            "spec": spec.to_dict(),
        }
        try:
            self.custom_api.create_namespaced_custom_object(
                namespace=spec.ref.namespace, body=body, **self._coordinates()
            )
        except kubernetes.client.ApiException as e:
            raise self._mutation_error("create", spec.ref, e) from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"create {spec.ref}: {e}") from e
        logger.info(f"Created {KIND} {spec.ref}")

    def update(self, spec: DesiredClusterSpec, resource_version: Optional[str] = None) -> None:
        """Replace the spec on the stored object, keeping keys this harness does not model."""
        body = self._get_object(spec.ref)
        merged = dict(body.get("spec", {}))
        desired = spec.to_dict()
        merged.update(desired)
        for key in OPTIONAL_SPEC_KEYS:
            if key not in desired:
                merged.pop(key, None)
        body["spec"] = merged
        if resource_version is not None:
            body.setdefault("metadata", {})["resourceVersion"] = resource_version

        try:
            self.custom_api.replace_namespaced_custom_object(
                namespace=spec.ref.namespace, name=spec.ref.name, body=body, **self._coordinates()
            )
        except kubernetes.client.ApiException as e:
            raise self._mutation_error("update", spec.ref, e) from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"update {spec.ref}: {e}") from e
        logger.info(f"Updated {KIND} {spec.ref}")

    def delete(self, ref: ClusterRef) -> None:
        try:
            self.custom_api.delete_namespaced_custom_object(
                namespace=ref.namespace, name=ref.name, **self._coordinates()
            )
        except kubernetes.client.ApiException as e:
            raise self._mutation_error("delete", ref, e) from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"delete {ref}: {e}") from e
        logger.info(f"Deletion requested for {KIND} {ref}")

    # ------------------------------------------------------------------
    # Owned objects
    # ------------------------------------------------------------------

    def list_pods(self, ref: ClusterRef) -> List[ComputeUnit]:
        try:
            pods = self.core_api.list_namespaced_pod(
                namespace=ref.namespace, label_selector=label_selector(cluster_labels(ref.name))
            )
        except kubernetes.client.ApiException as e:
            raise FetchError(f"list pods of {ref}: {e.status} {e.reason}") from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"list pods of {ref}: {e}") from e
        return [_compute_unit(pod) for pod in pods.items]

    def list_claims(self, ref: ClusterRef) -> List[StorageClaim]:
        try:
            pvcs = self.core_api.list_namespaced_persistent_volume_claim(
                namespace=ref.namespace, label_selector=label_selector(cluster_labels(ref.name))
            )
        except kubernetes.client.ApiException as e:
            raise FetchError(f"list claims of {ref}: {e.status} {e.reason}") from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"list claims of {ref}: {e}") from e
        return [_claim(pvc) for pvc in pvcs.items]

    def exec_in_pod(self, namespace: str, pod: str, container: str, *command: str) -> str:
        """Run a command inside a container and return its combined output."""
        try:
            return stream(
                self.core_api.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                container=container,
                command=list(command),
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
            )
        except kubernetes.client.ApiException as e:
            raise FetchError(f"exec in {namespace}/{pod}: {e.status} {e.reason}") from e
        except TRANSPORT_ERRORS as e:
            raise FetchError(f"exec in {namespace}/{pod}: {e}") from e


def rack_id(pod: ComputeUnit) -> Optional[int]:
    """Rack a pod was scheduled into, from the operator's rack label."""
    value = pod.labels.get(RACK_LABEL)
    return int(value) if value is not None else None
