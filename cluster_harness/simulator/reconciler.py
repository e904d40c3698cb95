#!/usr/bin/env python3
"""
Simulated Reconciler

Stands in for the real cluster operator. Each step compares every stored
desired-state record with the pods and claims it owns and takes at most
one corrective action per cluster, so convergence is observable over
several polls:

- scale out / in by one pod
- register a node id on one pod
- roll one pod to the desired image and resources
- write the applied spec back into the status block

Deleted clusters lose their record first; their pods are then removed and
their claims pass through Terminating for a configurable number of steps
before they disappear.
"""

import hashlib
import logging
import threading
import time
from typing import Dict, List, Optional

from ..api.models import ClusterRef, DesiredClusterSpec, VolumeSpec
from .models import ClaimRecord, ClusterRecord, PodRecord

logger = logging.getLogger("harness.simulator")


def node_id_for(pod_id: str) -> str:
    return "BB9" + hashlib.sha1(pod_id.encode()).hexdigest()[:12].upper()


def volume_name(volume: VolumeSpec) -> str:
    return volume.path.strip("/").replace("/", "-") or "root"


def pod_status(pod: PodRecord) -> Dict[str, object]:
    return {"image": pod.image, "aerospike": {"nodeID": pod.node_id}}


class SimulatedReconciler:
    """
    Steps the simulated control plane towards the stored desired state.

    Call step() directly for deterministic tests, or run() in a thread.
    """

    def __init__(self, session_factory, lock=None, interval: float = 1.0, terminating_ticks: int = 2):
        self.session_factory = session_factory
        self.lock = lock or threading.RLock()
        self.interval = interval
        self.terminating_ticks = terminating_ticks
        self.paused = False
        self.running = False
        self.cycles = 0
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def run(self):
        """Main reconciliation loop."""
        self.running = True
        logger.info("Simulated reconciler: starting main loop")
        while self.running:
            try:
                self.step()
            except Exception:
                logger.exception("Simulated reconciler: step failed")
            time.sleep(self.interval)

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="simulated-reconciler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self):
        self.running = False
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 2)
            self._thread = None

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    def step(self) -> int:
        """Run one reconciliation cycle; returns the number of actions taken."""
        if self.paused:
            return 0

        with self.lock:
            db = self.session_factory()
            try:
                actions = self._collect_garbage(db)
                for record in db.query(ClusterRecord).order_by(ClusterRecord.id).all():
                    if record.deleting:
                        logger.debug(f"{record.id}: removing deleted resource")
                        db.delete(record)
                        actions += 1
                    elif self._reconcile_cluster(db, record):
                        actions += 1
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        self.cycles += 1
        return actions

    def _reconcile_cluster(self, db, record: ClusterRecord) -> bool:
        ref = ClusterRef(record.namespace, record.name)
        spec = DesiredClusterSpec.from_dict(ref, record.spec)
        pods: List[PodRecord] = (
            db.query(PodRecord).filter(PodRecord.cluster_id == record.id).order_by(PodRecord.ordinal).all()
        )

        acted = (
            self._scale(db, record, spec, pods)
            or self._register_node_id(pods)
            or self._roll(record, spec, pods)
        )
        if acted:
            db.flush()
            pods = (
                db.query(PodRecord).filter(PodRecord.cluster_id == record.id).order_by(PodRecord.ordinal).all()
            )
            status = {k: v for k, v in (record.status or {}).items() if k != "pods"}
        else:
            status = dict(record.spec)
            if {k: v for k, v in (record.status or {}).items() if k != "pods"} != status:
                logger.info(f"{record.id}: applied spec written to status")

        status["pods"] = {pod.name: pod_status(pod) for pod in pods}
        record.status = status
        return acted

    def _scale(self, db, record: ClusterRecord, spec: DesiredClusterSpec, pods: List[PodRecord]) -> bool:
        if len(pods) > spec.size:
            victim = pods[-1]
            logger.info(f"{record.id}: scaling in, removing pod {victim.name}")
            db.delete(victim)
            return True
        if len(pods) == spec.size:
            return False

        taken = {pod.ordinal for pod in pods}
        ordinal = next(i for i in range(spec.size) if i not in taken)
        rack_id = spec.rack_ids[ordinal % len(spec.rack_ids)] if spec.rack_ids else 0
        name = f"{record.name}-{rack_id}-{ordinal}"
        pod_id = f"{record.namespace}/{name}"
        node_name = f"sim-node-{ordinal % 2}" if spec.multi_pod_per_host else f"sim-node-{ordinal}"

        logger.info(f"{record.id}: scaling out, creating pod {name}")
        db.add(PodRecord(
            id=pod_id,
            cluster_id=record.id,
            name=name,
            ordinal=ordinal,
            rack_id=rack_id,
            node_name=node_name,
            node_id="",
            image=spec.image,
            resources=spec.resources.to_dict(),
        ))
        for volume in spec.storage.volumes:
            claim_name = f"{volume_name(volume)}-{name}"
            claim_id = f"{record.namespace}/{claim_name}"
            claim = db.get(ClaimRecord, claim_id)
            if claim is None:
                db.add(ClaimRecord(
                    id=claim_id,
                    cluster_id=record.id,
                    name=claim_name,
                    pod_name=name,
                    volume_mode=volume.mode.value,
                    cascade_delete=spec.storage.policy_for(volume.mode).cascade_delete,
                    phase="Bound",
                ))
            elif claim.phase == "Bound":
                # retained from an earlier incarnation of the cluster
                claim.cluster_id = record.id
        return True

    def _register_node_id(self, pods: List[PodRecord]) -> bool:
        for pod in pods:
            if not pod.node_id:
                pod.node_id = node_id_for(pod.id)
                logger.debug(f"{pod.name}: registered node id {pod.node_id}")
                return True
        return False

    def _roll(self, record: ClusterRecord, spec: DesiredClusterSpec, pods: List[PodRecord]) -> bool:
        resources = spec.resources.to_dict()
        for pod in pods:
            if pod.image != spec.image or pod.resources != resources:
                logger.info(f"{record.id}: rolling pod {pod.name} to {spec.image}")
                pod.image = spec.image
                pod.resources = resources
                return True
        return False

    def _collect_garbage(self, db) -> int:
        live = {cluster_id for (cluster_id,) in db.query(ClusterRecord.id).all()}
        actions = 0

        for pod in db.query(PodRecord).all():
            if pod.cluster_id not in live:
                logger.debug(f"{pod.name}: owner gone, removing pod")
                db.delete(pod)
                actions += 1
        db.flush()

        pod_names = {(pod.cluster_id, pod.name) for pod in db.query(PodRecord).all()}
        for claim in db.query(ClaimRecord).all():
            if claim.phase == "Terminating":
                if claim.terminating_ticks > 1:
                    claim.terminating_ticks -= 1
                else:
                    logger.debug(f"{claim.name}: released")
                    db.delete(claim)
                actions += 1
            elif (claim.cluster_id, claim.pod_name) not in pod_names and claim.cascade_delete:
                if self.terminating_ticks > 0:
                    claim.phase = "Terminating"
                    claim.terminating_ticks = self.terminating_ticks
                else:
                    db.delete(claim)
                actions += 1
        return actions
