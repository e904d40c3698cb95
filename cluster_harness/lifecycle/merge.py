"""
Field-level merge of a caller's desired spec into the live object.

Updates are applied on top of a freshly fetched copy so that anything the
server filled in on fields the caller did not name survives the update.
"""

from dataclasses import fields, replace
from typing import Iterable, List, Optional

from ..api.models import DesiredClusterSpec

SPEC_FIELDS = tuple(f.name for f in fields(DesiredClusterSpec) if f.name != "ref")


def merge_spec(
    live: DesiredClusterSpec,
    desired: DesiredClusterSpec,
    merge_fields: Optional[Iterable[str]] = None,
) -> DesiredClusterSpec:
    """
    Return `live` with the named fields taken from `desired`.

    With no field list every spec field is taken from `desired`. A field
    the caller set to None (access control, config secret) is cleared on
    the live copy too.
    """
    names = SPEC_FIELDS if merge_fields is None else tuple(merge_fields)
    unknown = sorted(set(names) - set(SPEC_FIELDS))
    if unknown:
        raise ValueError(f"not mergeable spec fields: {unknown}")
    return replace(live, **{name: getattr(desired, name) for name in names})


def changed_fields(before: DesiredClusterSpec, after: DesiredClusterSpec) -> List[str]:
    return [name for name in SPEC_FIELDS if getattr(before, name) != getattr(after, name)]
