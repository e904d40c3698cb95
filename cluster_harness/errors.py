"""
Harness error taxonomy.

Every failure a lifecycle call can hit is raised as one of these and
propagated to the calling scenario.
"""

from typing import Any, Dict, List, Optional


class HarnessError(Exception):
    """Base class for all harness failures."""


class ClusterNotFound(HarnessError):
    """The requested object is not (yet / any longer) visible to readers."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"{kind} {name} not found")
        self.kind = kind
        self.name = name


class FetchError(HarnessError):
    """Non-recoverable read failure. Aborts any wait immediately."""


class SpecRejected(HarnessError):
    """The API refused a create/update outright. Never retried."""

    def __init__(self, verb: str, name: str, reason: str, status: Optional[int] = None):
        super().__init__(f"{verb} of {name} rejected: {reason}")
        self.verb = verb
        self.name = name
        self.reason = reason
        self.status = status


class WaitTimeout(HarnessError, TimeoutError):
    """
    A bounded wait ran out of time.

    Carries whatever the last tick observed so the failure names the
    invariant that never held instead of a bare "timed out".
    """

    def __init__(
        self,
        wait: str,
        deadline: float,
        elapsed: float,
        ticks: int,
        detail: str,
        verdict: Any = None,
        stuck: Optional[List[str]] = None,
    ):
        super().__init__(
            f"{wait}: timed out after {elapsed:.1f}s "
            f"(deadline {deadline:.1f}s, {ticks} ticks): {detail}"
        )
        self.wait = wait
        self.deadline = deadline
        self.elapsed = elapsed
        self.ticks = ticks
        self.detail = detail
        self.verdict = verdict
        self.stuck = stuck or []


class ResourceMismatch(HarnessError):
    """Post-hoc resource validation found pods whose resources differ from the declared ones."""

    def __init__(self, cluster: str, mismatches: List[Dict[str, str]]):
        lines = [
            f"{m['pod']}/{m['container']} {m['field']}: want {m['expected']}, got {m['actual']}"
            for m in mismatches
        ]
        super().__init__(f"resources of {cluster} not matching: " + "; ".join(lines))
        self.cluster = cluster
        self.mismatches = mismatches


class InvalidTransition(HarnessError):
    """A lifecycle verb was issued from a state that does not allow it."""

    def __init__(self, cluster: str, state: str, verb: str):
        super().__init__(f"cannot {verb} cluster {cluster} in state {state}")
        self.cluster = cluster
        self.state = state
        self.verb = verb


class ConcurrentFailure(HarnessError):
    """One or more of several independently driven clusters failed."""

    def __init__(self, failures: Dict[str, Exception]):
        super().__init__(
            "; ".join(f"{name}: {err}" for name, err in sorted(failures.items()))
        )
        self.failures = failures
