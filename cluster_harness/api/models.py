# file: models.py
"""
Typed views of the desired-state resource and of what the reconciler
reports back.

The dict converters use the custom resource's wire layout so the same
types serve the Kubernetes adapter and the simulator store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class VolumeMode(Enum):
    BLOCK = "block"
    FILESYSTEM = "filesystem"


class ClaimPhase(Enum):
    BOUND = "Bound"
    TERMINATING = "Terminating"
    ABSENT = "Absent"


@dataclass(frozen=True)
class ClusterRef:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ResourceQuantities:
    cpu: str
    memory: str

    def to_dict(self) -> Dict[str, str]:
        return {"cpu": self.cpu, "memory": self.memory}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceQuantities":
        return cls(cpu=str(data.get("cpu", "")), memory=str(data.get("memory", "")))


@dataclass(frozen=True)
class ResourceSpec:
    """Per-node request/limit pair. limit >= request is the caller's business."""

    requests: ResourceQuantities
    limits: ResourceQuantities

    def to_dict(self) -> Dict[str, Any]:
        return {"requests": self.requests.to_dict(), "limits": self.limits.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceSpec":
        return cls(
            requests=ResourceQuantities.from_dict(data.get("requests", {})),
            limits=ResourceQuantities.from_dict(data.get("limits", {})),
        )


@dataclass(frozen=True)
class VolumeSpec:
    path: str
    size_gb: int
    storage_class: str
    mode: VolumeMode

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "sizeInGB": self.size_gb,
            "storageClass": self.storage_class,
            "volumeMode": self.mode.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VolumeSpec":
        return cls(
            path=data["path"],
            size_gb=int(data.get("sizeInGB", 0)),
            storage_class=data.get("storageClass", ""),
            mode=VolumeMode(data.get("volumeMode", VolumeMode.FILESYSTEM.value)),
        )


@dataclass(frozen=True)
class VolumePolicy:
    cascade_delete: bool = True
    init_method: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"cascadeDelete": self.cascade_delete}
        if self.init_method:
            data["initMethod"] = self.init_method
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VolumePolicy":
        return cls(
            cascade_delete=bool(data.get("cascadeDelete", True)),
            init_method=data.get("initMethod"),
        )


@dataclass(frozen=True)
class StorageSpec:
    volumes: Tuple[VolumeSpec, ...] = ()
    block_policy: VolumePolicy = VolumePolicy()
    filesystem_policy: VolumePolicy = VolumePolicy()

    def policy_for(self, mode: VolumeMode) -> VolumePolicy:
        if mode == VolumeMode.BLOCK:
            return self.block_policy
        return self.filesystem_policy

    def to_dict(self) -> Dict[str, Any]:
        return {
            "blockVolumePolicy": self.block_policy.to_dict(),
            "filesystemVolumePolicy": self.filesystem_policy.to_dict(),
            "volumes": [v.to_dict() for v in self.volumes],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StorageSpec":
        return cls(
            volumes=tuple(VolumeSpec.from_dict(v) for v in data.get("volumes", [])),
            block_policy=VolumePolicy.from_dict(data.get("blockVolumePolicy", {})),
            filesystem_policy=VolumePolicy.from_dict(data.get("filesystemVolumePolicy", {})),
        )


@dataclass(frozen=True)
class UserSpec:
    name: str
    secret_name: str
    roles: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessControlSpec:
    users: Tuple[UserSpec, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users": [
                {"name": u.name, "secretName": u.secret_name, "roles": list(u.roles)}
                for u in self.users
            ]
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccessControlSpec":
        return cls(
            users=tuple(
                UserSpec(
                    name=u["name"],
                    secret_name=u.get("secretName", ""),
                    roles=tuple(u.get("roles", [])),
                )
                for u in data.get("users", [])
            )
        )


@dataclass(frozen=True)
class SecretMountSpec:
    secret_name: str
    mount_path: str


@dataclass(frozen=True)
class DesiredClusterSpec:
    """
    Target state of one cluster, as submitted by a test case.

    Equality is field-by-field over everything the reconciler must write
    back; the cluster reference is identity, not state, and is left out.
    """

    ref: ClusterRef = field(compare=False)
    size: int
    image: str
    resources: ResourceSpec
    storage: StorageSpec = StorageSpec()
    config: Mapping[str, Any] = field(default_factory=dict)
    access_control: Optional[AccessControlSpec] = None
    config_secret: Optional[SecretMountSpec] = None
    multi_pod_per_host: bool = True
    rack_ids: Tuple[int, ...] = ()

    def __post_init__(self):
        if not isinstance(self.size, int) or isinstance(self.size, bool) or self.size < 1:
            raise ValueError(f"cluster size must be a positive integer, got {self.size!r}")
        if not isinstance(self.image, str) or not self.image.strip():
            raise ValueError("cluster image must be a non-empty string")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "size": self.size,
            "image": self.image,
            "resources": self.resources.to_dict(),
            "storage": self.storage.to_dict(),
            "multiPodPerHost": self.multi_pod_per_host,
            "aerospikeConfig": dict(self.config),
        }
        if self.access_control is not None:
            data["aerospikeAccessControl"] = self.access_control.to_dict()
        if self.config_secret is not None:
            data["aerospikeConfigSecret"] = {
                "secretName": self.config_secret.secret_name,
                "mountPath": self.config_secret.mount_path,
            }
        if self.rack_ids:
            data["rackConfig"] = {"racks": [{"id": r} for r in self.rack_ids]}
        return data

    @classmethod
    def from_dict(cls, ref: ClusterRef, data: Mapping[str, Any]) -> "DesiredClusterSpec":
        access = data.get("aerospikeAccessControl")
        secret = data.get("aerospikeConfigSecret")
        return cls(
            ref=ref,
            size=int(data["size"]),
            image=data["image"],
            resources=ResourceSpec.from_dict(data.get("resources", {})),
            storage=StorageSpec.from_dict(data.get("storage", {})),
            config=dict(data.get("aerospikeConfig", {})),
            access_control=AccessControlSpec.from_dict(access) if access is not None else None,
            config_secret=(
                SecretMountSpec(secret["secretName"], secret.get("mountPath", ""))
                if secret is not None
                else None
            ),
            multi_pod_per_host=bool(data.get("multiPodPerHost", True)),
            rack_ids=tuple(r["id"] for r in data.get("rackConfig", {}).get("racks", [])),
        )


@dataclass(frozen=True)
class PodStatus:
    name: str
    node_id: str
    image: str


@dataclass(frozen=True)
class ObservedClusterStatus:
    """One snapshot of the status block. Re-fetched every tick."""

    size: int
    reconciled_spec: Optional[DesiredClusterSpec]
    pods: Tuple[PodStatus, ...] = ()

    @classmethod
    def from_dict(cls, ref: ClusterRef, status: Optional[Mapping[str, Any]]) -> "ObservedClusterStatus":
        status = status or {}
        pods = tuple(
            PodStatus(
                name=name,
                node_id=(pod.get("aerospike") or {}).get("nodeID", "") or "",
                image=pod.get("image", ""),
            )
            for name, pod in sorted((status.get("pods") or {}).items())
        )
        applied = {k: v for k, v in status.items() if k != "pods"}
        reconciled = None
        if applied.get("image") and applied.get("size"):
            reconciled = DesiredClusterSpec.from_dict(ref, applied)
        return cls(size=int(status.get("size", 0) or 0), reconciled_spec=reconciled, pods=pods)


@dataclass(frozen=True)
class LiveCluster:
    """The desired-state object as the API server currently holds it."""

    spec: DesiredClusterSpec
    resource_version: Optional[str] = None


@dataclass(frozen=True)
class ContainerResources:
    name: str
    requests: ResourceQuantities
    limits: ResourceQuantities


@dataclass(frozen=True)
class ComputeUnit:
    name: str
    node_name: str = ""
    containers: Tuple[ContainerResources, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StorageClaim:
    name: str
    phase: ClaimPhase
    volume_mode: Optional[VolumeMode] = None


RACK_LABEL = "aerospike.com/rack-id"


def cluster_labels(name: str) -> Dict[str, str]:
    """Labels the reconciler stamps on every pod and claim it owns."""
    return {"app": "aerospike-cluster", "aerospike.com/cr": name}


def label_selector(labels: Mapping[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
