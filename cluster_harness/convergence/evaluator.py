"""
Convergence Evaluator

Decides, from one observed status snapshot, whether a cluster has reached
its desired state. Pure: no I/O, no clock, same inputs give the same verdict.

Checks, in order:
- object visible at all
- reconciled size and pod count match the desired size
- the applied spec written back by the reconciler equals the desired spec
- every pod registered with cluster membership (non-empty node id)
- every pod running the desired image (advisory; all pods are scanned)
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from ..api.models import DesiredClusterSpec, ObservedClusterStatus

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"


class VerdictState(Enum):
    PENDING = "pending"
    DIVERGED = "diverged"
    CONVERGED = "converged"


class VerdictReason(Enum):
    NOT_FOUND = "not_found"
    SIZE_MISMATCH = "size_mismatch"
    POD_COUNT_MISMATCH = "pod_count_mismatch"
    SPEC_MISMATCH = "spec_mismatch"
    MISSING_NODE_ID = "missing_node_id"
    IMAGE_MISMATCH = "image_mismatch"
    CONVERGED = "converged"


@dataclass(frozen=True)
class ConvergenceVerdict:
    state: VerdictState
    reason: VerdictReason
    message: str
    advisories: Tuple[str, ...] = ()

    @property
    def converged(self) -> bool:
        return self.state == VerdictState.CONVERGED

    def escalate(self) -> "ConvergenceVerdict":
        """
        Terminal form of this verdict once a wait gives up on it.

        A pending verdict that carried advisories becomes DIVERGED so the
        mismatch it recorded is what gets reported.
        """
        if self.state == VerdictState.PENDING and self.advisories:
            return replace(self, state=VerdictState.DIVERGED)
        return self

    def __str__(self) -> str:
        text = f"{self.state.value} ({self.reason.value}): {self.message}"
        if self.advisories:
            text += " [" + "; ".join(self.advisories) + "]"
        return text


def _pending(reason: VerdictReason, message: str, advisories: Tuple[str, ...] = ()) -> ConvergenceVerdict:
    return ConvergenceVerdict(VerdictState.PENDING, reason, message, advisories)


def parse_image(image: str) -> Tuple[str, str, str]:
    """Split an image reference into (registry, repository, tag)."""
    ref = image.strip()
    if "@" in ref:
        ref, digest = ref.split("@", 1)
        tag = "@" + digest
    else:
        tag = ""

    registry = DEFAULT_REGISTRY
    first, sep, rest = ref.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        registry, ref = first, rest

    if not tag:
        name, sep, version = ref.rpartition(":")
        if sep and "/" not in version:
            ref, tag = name, version
        else:
            tag = DEFAULT_TAG

    if registry == DEFAULT_REGISTRY and "/" not in ref:
        ref = "library/" + ref
    return registry, ref, tag


def images_equal(desired: str, actual: str) -> bool:
    return parse_image(desired) == parse_image(actual)


def evaluate(
    desired: DesiredClusterSpec, observed: Optional[ObservedClusterStatus]
) -> ConvergenceVerdict:
    if observed is None:
        return _pending(VerdictReason.NOT_FOUND, f"cluster {desired.ref} not visible yet")

    if observed.size != desired.size:
        return _pending(
            VerdictReason.SIZE_MISMATCH,
            f"reconciled size {observed.size}, want {desired.size}",
        )

    if len(observed.pods) != desired.size:
        return _pending(
            VerdictReason.POD_COUNT_MISMATCH,
            f"status lists {len(observed.pods)} pods, want {desired.size}",
        )

    if observed.reconciled_spec != desired:
        return _pending(VerdictReason.SPEC_MISMATCH, "applied spec not yet written back")

    unregistered = [p.name for p in observed.pods if not p.node_id]
    if unregistered:
        return _pending(
            VerdictReason.MISSING_NODE_ID,
            f"pods without node id: {', '.join(unregistered)}",
        )

    advisories = tuple(
        f"pod {p.name} runs {p.image}, want {desired.image}"
        for p in observed.pods
        if not images_equal(desired.image, p.image)
    )
    if advisories:
        return _pending(
            VerdictReason.IMAGE_MISMATCH,
            f"{len(advisories)}/{len(observed.pods)} pods on a different image",
            advisories,
        )

    return ConvergenceVerdict(
        VerdictState.CONVERGED,
        VerdictReason.CONVERGED,
        f"{desired.size} pods registered on {desired.image}",
    )
