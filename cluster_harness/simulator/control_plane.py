"""
In-process ClusterClient backed by the simulator store.

Mutations are validated the way the API server would validate them and
raise SpecRejected on refusal. With auto_reconcile on, every read first
advances the SimulatedReconciler by one step, so a poll loop drives the
simulated operator at its own pace.
"""

import logging
import threading
from contextlib import contextmanager
from typing import List, Optional

from ..api.client import ClusterClient
from ..api.models import (
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
)
from ..errors import ClusterNotFound, SpecRejected
from .models import ClaimRecord, ClusterRecord, PodRecord
from .reconciler import SimulatedReconciler

logger = logging.getLogger("harness.simulator")

CONTAINER_NAME = "aerospike-server"


class SimulatedControlPlane(ClusterClient):
    def __init__(
        self,
        session_factory,
        auto_reconcile: bool = True,
        terminating_ticks: int = 2,
        max_size: Optional[int] = None,
        reconcile_interval: float = 1.0,
    ):
        self.session_factory = session_factory
        self.auto_reconcile = auto_reconcile
        self.max_size = max_size
        self.lock = threading.RLock()
        self.reconciler = SimulatedReconciler(
            session_factory,
            lock=self.lock,
            interval=reconcile_interval,
            terminating_ticks=terminating_ticks,
        )

    @contextmanager
    def _session(self):
        with self.lock:
            db = self.session_factory()
            try:
                yield db
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def _tick(self):
        if self.auto_reconcile:
            self.reconciler.step()

    def _record(self, db, ref: ClusterRef) -> ClusterRecord:
        record = db.get(ClusterRecord, str(ref))
        if record is None:
            raise ClusterNotFound("cluster", str(ref))
        return record

    def _admit(self, verb: str, spec: DesiredClusterSpec):
        if self.max_size is not None and spec.size > self.max_size:
            raise SpecRejected(
                verb, str(spec.ref), f"size {spec.size} exceeds maximum {self.max_size}", 422
            )

    # ------------------------------------------------------------------
    # ClusterClient
    # ------------------------------------------------------------------

    def get_status(self, ref: ClusterRef) -> ObservedClusterStatus:
        self._tick()
        with self._session() as db:
            return ObservedClusterStatus.from_dict(ref, self._record(db, ref).status)

    def get_cluster(self, ref: ClusterRef) -> LiveCluster:
        self._tick()
        with self._session() as db:
            record = self._record(db, ref)
            return LiveCluster(
                spec=DesiredClusterSpec.from_dict(ref, record.spec),
                resource_version=str(record.resource_version),
            )

    def create(self, spec: DesiredClusterSpec) -> None:
        self._admit("create", spec)
        with self._session() as db:
            if db.get(ClusterRecord, str(spec.ref)) is not None:
                raise SpecRejected("create", str(spec.ref), "already exists", 409)
            db.add(ClusterRecord(
                id=str(spec.ref),
                namespace=spec.ref.namespace,
                name=spec.ref.name,
                spec=spec.to_dict(),
                status={},
                resource_version=1,
                deleting=False,
            ))
        logger.info(f"Created {spec.ref}")

    def update(self, spec: DesiredClusterSpec, resource_version: Optional[str] = None) -> None:
        self._admit("update", spec)
        with self._session() as db:
            record = self._record(db, spec.ref)
            if record.deleting:
                raise SpecRejected("update", str(spec.ref), "object is being deleted", 409)
            if resource_version is not None and resource_version != str(record.resource_version):
                raise SpecRejected(
                    "update",
                    str(spec.ref),
                    f"resource version {resource_version} is stale (current {record.resource_version})",
                    409,
                )
            record.spec = spec.to_dict()
            record.resource_version += 1
        logger.info(f"Updated {spec.ref}")

    def delete(self, ref: ClusterRef) -> None:
        with self._session() as db:
            self._record(db, ref).deleting = True
        logger.info(f"Deletion requested for {ref}")

    def list_pods(self, ref: ClusterRef) -> List[ComputeUnit]:
        self._tick()
        with self._session() as db:
            pods = (
                db.query(PodRecord)
                .filter(PodRecord.cluster_id == str(ref))
                .order_by(PodRecord.ordinal)
                .all()
            )
            return [
                ComputeUnit(
                    name=pod.name,
                    node_name=pod.node_name,
                    containers=(
                        ContainerResources(
                            name=CONTAINER_NAME,
                            requests=ResourceQuantities.from_dict((pod.resources or {}).get("requests", {})),
                            limits=ResourceQuantities.from_dict((pod.resources or {}).get("limits", {})),
                        ),
                    ),
                    labels={**cluster_labels(ref.name), RACK_LABEL: str(pod.rack_id)},
                )
                for pod in pods
            ]

    def list_claims(self, ref: ClusterRef) -> List[StorageClaim]:
        self._tick()
        with self._session() as db:
            claims = (
                db.query(ClaimRecord)
                .filter(ClaimRecord.cluster_id == str(ref))
                .order_by(ClaimRecord.name)
                .all()
            )
            return [
                StorageClaim(
                    name=claim.name,
                    phase=ClaimPhase(claim.phase),
                    volume_mode=VolumeMode(claim.volume_mode),
                )
                for claim in claims
            ]
