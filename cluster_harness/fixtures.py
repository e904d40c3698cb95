"""
Static test fixtures.

Config schemas and secret files are read from disk once per process and
handed out read-only afterwards. The spec builders produce the cluster
shapes the end-to-end scenarios deploy.
"""

import logging
import os
from dataclasses import replace
from types import MappingProxyType
from typing import Mapping, Optional

from .api.models import (
    AccessControlSpec,
    ClusterRef,
    DesiredClusterSpec,
    ResourceQuantities,
    ResourceSpec,
    SecretMountSpec,
    StorageSpec,
    UserSpec,
    VolumeMode,
    VolumePolicy,
    VolumeSpec,
)
from .config import LATEST_CLUSTER_IMAGE
from .errors import HarnessError

logger = logging.getLogger("harness.fixtures")

TLS_SECRET_NAME = "aerospike-secret"
AUTH_SECRET_NAME = "auth"
AUTH_SECRET_NAME_FOR_UPDATE = "auth-update"
SECRET_MOUNT_PATH = "/etc/aerospike/secret"
DEFAULT_PROTO_FD_MAX = 15000


def _read_dir(path: str, mode: str) -> Mapping:
    if not os.path.isdir(path):
        raise HarnessError(f"fixture directory {path} does not exist")

    contents = {}
    for name in sorted(os.listdir(path)):
        full = os.path.join(path, name)
        if os.path.isdir(full):
            # no need to check recursively
            continue
        try:
            with open(full, mode) as f:
                contents[name] = f.read()
        except OSError as e:
            raise HarnessError(f"wrong fixture file {name}: {e}") from e

    if not contents:
        raise HarnessError(f"no fixture file available in {path}")
    return MappingProxyType(contents)


class FixtureStore:
    """Read-only schema (text) and secret (bytes) maps."""

    def __init__(self, schemas: Mapping[str, str], secrets: Mapping[str, bytes]):
        self.schemas = MappingProxyType(dict(schemas))
        self.secrets = MappingProxyType(dict(secrets))

    @classmethod
    def load(cls, schema_dir: str, secret_dir: str) -> "FixtureStore":
        store = cls(_read_dir(schema_dir, "r"), _read_dir(secret_dir, "rb"))
        logger.info(f"Loaded {len(store.schemas)} schemas and {len(store.secrets)} secrets")
        return store


_store: Optional[FixtureStore] = None


def init_fixture_store(schema_dir: str, secret_dir: str) -> FixtureStore:
    """Initialise the process-wide store. A second call is an error."""
    global _store
    if _store is not None:
        raise HarnessError("fixture store already initialised")
    _store = FixtureStore.load(schema_dir, secret_dir)
    return _store


def get_fixture_store() -> FixtureStore:
    if _store is None:
        raise HarnessError("fixture store not initialised")
    return _store


# ----------------------------------------------------------------------------
# Cluster spec builders
# ----------------------------------------------------------------------------


def _uniform_resources(cpu: str, memory: str) -> ResourceSpec:
    quantities = ResourceQuantities(cpu=cpu, memory=memory)
    return ResourceSpec(requests=quantities, limits=quantities)


def _default_volumes():
    return (
        VolumeSpec("/test/dev/xvdf", 1, "ssd", VolumeMode.BLOCK),
        VolumeSpec("/opt/aerospike", 1, "ssd", VolumeMode.FILESYSTEM),
    )


def _namespace(memory_size: int, replication_factor: int, storage_engine: dict) -> dict:
    return {
        "name": "test",
        "memory-size": memory_size,
        "replication-factor": replication_factor,
        "storage-engine": storage_engine,
    }


def basic_cluster_spec(
    ref: ClusterRef,
    size: int,
    image: str = LATEST_CLUSTER_IMAGE,
    cascade_delete: bool = True,
) -> DesiredClusterSpec:
    """Small device-backed cluster with security enabled."""
    policy = VolumePolicy(cascade_delete=cascade_delete)
    return DesiredClusterSpec(
        ref=ref,
        size=size,
        image=image,
        resources=_uniform_resources("200m", "1Gi"),
        storage=StorageSpec(
            volumes=_default_volumes(),
            block_policy=policy,
            filesystem_policy=VolumePolicy(cascade_delete=cascade_delete, init_method="deleteFiles"),
        ),
        config={
            "service": {
                "feature-key-file": f"{SECRET_MOUNT_PATH}/features.conf",
                "proto-fd-max": DEFAULT_PROTO_FD_MAX,
            },
            "security": {"enable-security": True},
            "namespaces": [
                _namespace(1000955200, 1, {"type": "device", "devices": ["/test/dev/xvdf"]})
            ],
        },
        access_control=AccessControlSpec(
            users=(UserSpec("admin", AUTH_SECRET_NAME, ("sys-admin", "user-admin", "read-write")),)
        ),
        config_secret=SecretMountSpec(TLS_SECRET_NAME, SECRET_MOUNT_PATH),
    )


def ssd_storage_cluster_spec(
    ref: ClusterRef, size: int, replication_factor: int, multi_pod_per_host: bool
) -> DesiredClusterSpec:
    spec = basic_cluster_spec(ref, size)
    config = dict(spec.config)
    config["namespaces"] = [
        _namespace(2000955200, replication_factor, {"type": "device", "devices": ["/test/dev/xvdf"]})
    ]
    return replace(spec, config=config, multi_pod_per_host=multi_pod_per_host)


def data_in_memory_cluster_spec(
    ref: ClusterRef, size: int, replication_factor: int, multi_pod_per_host: bool
) -> DesiredClusterSpec:
    """No persistent data device: namespace lives in memory only."""
    spec = basic_cluster_spec(ref, size)
    config = dict(spec.config)
    config["namespaces"] = [_namespace(2000955200, replication_factor, {"type": "memory"})]
    storage = StorageSpec(
        volumes=(VolumeSpec("/opt/aerospike", 1, "ssd", VolumeMode.FILESYSTEM),),
        block_policy=spec.storage.block_policy,
        filesystem_policy=spec.storage.filesystem_policy,
    )
    return replace(spec, config=config, storage=storage, multi_pod_per_host=multi_pod_per_host)


def rack_aware_cluster_spec(ref: ClusterRef, size: int, rack_ids=(1,)) -> DesiredClusterSpec:
    spec = basic_cluster_spec(ref, size)
    return replace(spec, rack_ids=tuple(rack_ids))
