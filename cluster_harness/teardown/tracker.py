"""
Storage Teardown Tracker

After a cluster is deleted, its compute units must disappear first and
only then its storage claims. A claim is still in use while any unit
references it, so the claim phase is not looked at until the pod phase is
done, and the pod phase is never looked at again afterwards.

Both phases share one deadline, which a caller may pass in as a running
Deadline so an earlier wait counts against it too.
"""

import logging
from typing import Callable, List, Optional, Union

from ..api.models import ClaimPhase, ClusterRef, ComputeUnit, StorageClaim
from ..convergence.poller import Deadline, SystemClock, start_timer
from ..errors import WaitTimeout
from ..metrics import METRICS

logger = logging.getLogger("harness.teardown")


def _claim_pending(claim: StorageClaim, retain: Optional[Callable[[StorageClaim], bool]]) -> bool:
    if claim.phase == ClaimPhase.ABSENT:
        return False
    if claim.phase == ClaimPhase.TERMINATING:
        return True
    # Bound: only acceptable for claims the volume policy keeps.
    return not (retain is not None and retain(claim))


def wait_for_teardown(
    ref: ClusterRef,
    fetch_pods: Callable[[ClusterRef], List[ComputeUnit]],
    fetch_claims: Callable[[ClusterRef], List[StorageClaim]],
    interval: float,
    deadline: Union[float, Deadline],
    retain: Optional[Callable[[StorageClaim], bool]] = None,
    clock=None,
) -> int:
    """
    Block until every pod and every (non-retained) claim of `ref` is gone.

    Returns the total number of ticks. Raises WaitTimeout naming whatever
    was still around when the deadline passed.
    """
    clock = clock or SystemClock()
    timer = start_timer(clock, deadline)
    ticks = 0

    # Phase 1: compute units.
    while True:
        timer.wait(interval)
        ticks += 1
        METRICS["poll_ticks"].labels(wait="teardown_pods").inc()

        pods = fetch_pods(ref)
        if not pods:
            logger.info(f"{ref}: all pods gone after {ticks} ticks")
            break

        logger.debug(f"{ref}: waiting for {len(pods)} pods to terminate")
        if timer.expired():
            METRICS["wait_duration"].labels(wait="teardown", outcome="timeout").observe(timer.elapsed())
            names = [p.name for p in pods]
            raise WaitTimeout(
                wait=f"teardown {ref}",
                deadline=timer.seconds,
                elapsed=timer.elapsed(),
                ticks=ticks,
                detail=f"pods still present: {', '.join(names)}",
                stuck=names,
            )

    # Phase 2: storage claims.
    while True:
        timer.wait(interval)
        ticks += 1
        METRICS["poll_ticks"].labels(wait="teardown_claims").inc()

        pending = [c for c in fetch_claims(ref) if _claim_pending(c, retain)]
        if not pending:
            METRICS["wait_duration"].labels(wait="teardown", outcome="torn_down").observe(timer.elapsed())
            logger.info(f"{ref}: storage claims released after {ticks} ticks")
            return ticks

        for claim in pending:
            logger.debug(f"{ref}: waiting for PVC {claim.name} ({claim.phase.value})")
        if timer.expired():
            METRICS["wait_duration"].labels(wait="teardown", outcome="timeout").observe(timer.elapsed())
            raise WaitTimeout(
                wait=f"teardown {ref}",
                deadline=timer.seconds,
                elapsed=timer.elapsed(),
                ticks=ticks,
                detail="storage claims stuck: "
                + ", ".join(f"{c.name} ({c.phase.value})" for c in pending),
                stuck=[c.name for c in pending],
            )
