#!/usr/bin/env python3
"""
Lifecycle Driver

Issues create / update / delete against the desired-state resource and
blocks until the live system has provably caught up.

Per-cluster state machine:
    ABSENT -> CREATING -> CONVERGED -> (UPDATING -> CONVERGED)* -> DELETING -> TORN_DOWN
A failed verification parks the cluster in FAILED, from which it may be
updated again or deleted.

Every successful create registers a matching teardown at the same moment;
cleanup() (or leaving the driver's `with` block) runs them newest first.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..api.client import ClusterClient, snapshot_accessor
from ..api.models import ClusterRef, DesiredClusterSpec, StorageClaim
from ..config import HarnessSettings
from ..convergence.poller import Deadline, SystemClock, timeout_for, wait_until_absent, wait_until_converged
from ..diagnostic_logger import DiagnosticLogger
from ..errors import (
    ClusterNotFound,
    ConcurrentFailure,
    HarnessError,
    InvalidTransition,
    ResourceMismatch,
    SpecRejected,
)
from ..metrics import METRICS
from ..teardown.tracker import wait_for_teardown
from .merge import changed_fields, merge_spec
from .resources import find_resource_mismatches

logger = logging.getLogger("harness.lifecycle")


class ClusterState(Enum):
    ABSENT = "absent"
    CREATING = "creating"
    CONVERGED = "converged"
    UPDATING = "updating"
    DELETING = "deleting"
    TORN_DOWN = "torn_down"
    FAILED = "failed"


# verb -> (states it may start from, transitional state while it runs)
TRANSITIONS = {
    "create": ({ClusterState.ABSENT, ClusterState.TORN_DOWN}, ClusterState.CREATING),
    "update": ({ClusterState.CONVERGED, ClusterState.FAILED}, ClusterState.UPDATING),
    "delete": (
        {ClusterState.CONVERGED, ClusterState.FAILED, ClusterState.CREATING},
        ClusterState.DELETING,
    ),
}


@dataclass
class ClusterHandle:
    ref: ClusterRef
    spec: DesiredClusterSpec
    state: ClusterState = ClusterState.ABSENT
    history: List[ClusterState] = field(default_factory=list)

    def move_to(self, state: ClusterState) -> None:
        self.history.append(self.state)
        self.state = state


class LifecycleDriver:
    """
    Create/update/delete-and-verify on top of a ClusterClient.

    Use as a context manager so registered cleanups always run:

        with LifecycleDriver(client, settings) as driver:
            handle = driver.create_and_verify(spec)
            ...
    """

    def __init__(
        self,
        client: ClusterClient,
        settings: Optional[HarnessSettings] = None,
        clock=None,
        diagnostics: Optional[DiagnosticLogger] = None,
    ):
        self.client = client
        self.settings = settings or HarnessSettings()
        self.clock = clock or SystemClock()
        self.diagnostics = diagnostics or DiagnosticLogger()
        self.handles: Dict[ClusterRef, ClusterHandle] = {}
        self._cleanups: List[Tuple[ClusterRef, Callable[[], None]]] = []

    def __enter__(self) -> "LifecycleDriver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _begin(self, handle: ClusterHandle, verb: str) -> ClusterState:
        allowed, transitional = TRANSITIONS[verb]
        if handle.state not in allowed:
            raise InvalidTransition(str(handle.ref), handle.state.value, verb)
        previous = handle.state
        handle.move_to(transitional)
        return previous

    def _record(self, verb: str, handle: ClusterHandle, error: Optional[Exception] = None) -> None:
        context = {"cluster": str(handle.ref), "verb": verb, "state": handle.state.value}
        if error is None:
            METRICS["lifecycle_operations"].labels(verb=verb, outcome="ok").inc()
            self.diagnostics.log_success(f"{verb} {handle.ref}", context)
        else:
            METRICS["lifecycle_operations"].labels(verb=verb, outcome=type(error).__name__).inc()
            self.diagnostics.log_error(f"{verb} {handle.ref}: {error}", context)

    def _deadline(self, size: int, deadline: Optional[float]) -> float:
        if deadline is not None:
            return deadline
        return timeout_for(size, self.settings.base_timeout)

    def _wait_converged(self, spec: DesiredClusterSpec, deadline: float) -> None:
        wait_until_converged(
            snapshot_accessor(self.client, spec.ref),
            spec,
            interval=self.settings.poll_interval,
            deadline=deadline,
            clock=self.clock,
        )

    def _retain(self, spec: DesiredClusterSpec) -> Callable[[StorageClaim], bool]:
        """Claims whose volume policy keeps them after the cluster is gone."""

        def retain(claim: StorageClaim) -> bool:
            if claim.volume_mode is None:
                return False
            return not spec.storage.policy_for(claim.volume_mode).cascade_delete

        return retain

    # ------------------------------------------------------------------
    # Lifecycle verbs
    # ------------------------------------------------------------------

    def create_and_verify(
        self, spec: DesiredClusterSpec, deadline: Optional[float] = None
    ) -> ClusterHandle:
        handle = self.handles.get(spec.ref) or ClusterHandle(ref=spec.ref, spec=spec)
        previous = self._begin(handle, "create")
        handle.spec = spec

        logger.info(f"Deploying cluster {spec.ref} (size={spec.size}, image={spec.image})")
        try:
            self.client.create(spec)
        except HarnessError as e:
            handle.move_to(previous)
            self._record("create", handle, e)
            raise
        self.handles[spec.ref] = handle
        self._cleanups.append((spec.ref, lambda: self._cleanup_one(handle)))

        try:
            self._wait_converged(spec, self._deadline(spec.size, deadline))
        except HarnessError as e:
            handle.move_to(ClusterState.FAILED)
            self._record("create", handle, e)
            raise

        handle.move_to(ClusterState.CONVERGED)
        self._record("create", handle)
        return handle

    def update_and_verify(
        self,
        handle: ClusterHandle,
        spec: DesiredClusterSpec,
        merge_fields: Optional[Iterable[str]] = None,
        deadline: Optional[float] = None,
    ) -> ClusterHandle:
        previous = self._begin(handle, "update")

        try:
            live = self.client.get_cluster(handle.ref)
            merged = merge_spec(live.spec, spec, merge_fields)
            logger.info(f"Updating {handle.ref}: {', '.join(changed_fields(live.spec, merged)) or 'no changes'}")
            self.client.update(merged, live.resource_version)
        except SpecRejected as e:
            handle.move_to(previous)
            self._record("update", handle, e)
            raise
        except HarnessError as e:
            handle.move_to(ClusterState.FAILED)
            self._record("update", handle, e)
            raise

        handle.spec = merged
        try:
            self._wait_converged(merged, self._deadline(merged.size, deadline))
        except HarnessError as e:
            handle.move_to(ClusterState.FAILED)
            self._record("update", handle, e)
            raise

        handle.move_to(ClusterState.CONVERGED)
        self._record("update", handle)
        return handle

    def delete_and_verify(self, handle: ClusterHandle, deadline: Optional[float] = None) -> None:
        self._begin(handle, "delete")
        timer = Deadline(self.clock, self._deadline(handle.spec.size, deadline))

        try:
            self.client.delete(handle.ref)
            wait_until_absent(
                lambda: self.client.get_cluster(handle.ref),
                str(handle.ref),
                interval=self.settings.cleanup_interval,
                deadline=timer,
                clock=self.clock,
                wait="delete",
            )
            wait_for_teardown(
                handle.ref,
                self.client.list_pods,
                self.client.list_claims,
                interval=self.settings.cleanup_interval,
                deadline=timer,
                retain=self._retain(handle.spec),
                clock=self.clock,
            )
        except HarnessError as e:
            handle.move_to(ClusterState.FAILED)
            self._record("delete", handle, e)
            raise

        handle.move_to(ClusterState.TORN_DOWN)
        self._record("delete", handle)

    def validate_resources(self, handle: ClusterHandle) -> None:
        """Every container's requests and limits must equal the declared spec exactly."""
        pods = self.client.list_pods(handle.ref)
        mismatches = find_resource_mismatches(handle.spec.resources, pods)
        if mismatches:
            error = ResourceMismatch(str(handle.ref), mismatches)
            self._record("validate", handle, error)
            raise error
        logger.info(f"{handle.ref}: resources match on {len(pods)} pods")
        self._record("validate", handle)

    def create_or_update(
        self, spec: DesiredClusterSpec, deadline: Optional[float] = None
    ) -> ClusterHandle:
        """Deploy when the cluster does not exist yet, otherwise merge and update."""
        try:
            live = self.client.get_cluster(spec.ref)
        except ClusterNotFound:
            return self.create_and_verify(spec, deadline)

        handle = self.handles.get(spec.ref)
        if handle is None:
            handle = ClusterHandle(ref=spec.ref, spec=live.spec, state=ClusterState.CONVERGED)
            self.handles[spec.ref] = handle
        return self.update_and_verify(handle, spec, deadline=deadline)

    def expect_failure(self, operation: Callable[[], Any], msg: str) -> HarnessError:
        """Run `operation`, which must fail with a harness error; return that error."""
        try:
            operation()
        except HarnessError as e:
            logger.info(f"Expected failure: {e}")
            return e
        raise AssertionError(msg)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _cleanup_one(self, handle: ClusterHandle) -> None:
        if handle.state in (ClusterState.TORN_DOWN, ClusterState.ABSENT):
            return
        try:
            self.client.delete(handle.ref)
        except ClusterNotFound:
            pass
        wait_until_absent(
            lambda: self.client.get_cluster(handle.ref),
            str(handle.ref),
            interval=self.settings.cleanup_interval,
            deadline=self.settings.cleanup_timeout,
            clock=self.clock,
            wait="cleanup",
        )
        handle.move_to(ClusterState.TORN_DOWN)

    def cleanup(self) -> None:
        """Run registered teardowns newest first; re-raise the first failure after all ran."""
        first_error: Optional[Exception] = None
        while self._cleanups:
            ref, teardown = self._cleanups.pop()
            try:
                teardown()
            except Exception as e:
                self.diagnostics.log_error(f"cleanup of {ref} failed: {e}", {"cluster": str(ref)})
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


def verify_concurrently(
    jobs: Dict[str, Callable[[], Any]], max_workers: Optional[int] = None
) -> Dict[str, Any]:
    """
    Run independent per-cluster scenarios in parallel, each with its own
    poll loop. Returns results by job name; raises ConcurrentFailure
    listing every job that failed once all of them have finished.
    """
    results: Dict[str, Any] = {}
    failures: Dict[str, Exception] = {}
    if not jobs:
        return results

    with ThreadPoolExecutor(max_workers=max_workers or len(jobs)) as pool:
        futures = {pool.submit(job): name for name, job in jobs.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except Exception as e:
                logger.error(f"{name}: {e}")
                failures[name] = e

    if failures:
        raise ConcurrentFailure(failures)
    return results
