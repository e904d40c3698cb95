"""Exact comparison of pod resource allocations against the cluster spec."""

from typing import Dict, Iterable, List

from kubernetes.utils import parse_quantity

from ..api.models import ComputeUnit, ResourceQuantities, ResourceSpec


def same_quantity(expected: str, actual: str) -> bool:
    """Equal as quantities, so "1Gi" matches "1024Mi". Unset or unparsable never matches."""
    if not expected or not actual:
        return False
    try:
        return parse_quantity(expected) == parse_quantity(actual)
    except ValueError:
        return False


def _compare(
    pod: str, container: str, kind: str, want: ResourceQuantities, got: ResourceQuantities
) -> List[Dict[str, str]]:
    found = []
    for resource in ("cpu", "memory"):
        expected = getattr(want, resource)
        actual = getattr(got, resource)
        if not same_quantity(expected, actual):
            found.append({
                "pod": pod,
                "container": container,
                "field": f"{kind}.{resource}",
                "expected": expected or "<unset>",
                "actual": actual or "<unset>",
            })
    return found


def find_resource_mismatches(
    resources: ResourceSpec, pods: Iterable[ComputeUnit]
) -> List[Dict[str, str]]:
    """Every request/limit of every container that differs from `resources`."""
    mismatches: List[Dict[str, str]] = []
    for pod in pods:
        for container in pod.containers:
            mismatches += _compare(pod.name, container.name, "requests", resources.requests, container.requests)
            mismatches += _compare(pod.name, container.name, "limits", resources.limits, container.limits)
    return mismatches
