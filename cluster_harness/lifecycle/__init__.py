from .driver import ClusterHandle, ClusterState, LifecycleDriver, verify_concurrently
from .merge import merge_spec

__all__ = [
    "ClusterHandle",
    "ClusterState",
    "LifecycleDriver",
    "merge_spec",
    "verify_concurrently",
]
