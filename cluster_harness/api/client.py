"""
Interface to the reconciliation subsystem.

The harness never mutates live infrastructure itself; it only talks to
something implementing ClusterClient. Reads that find nothing raise
ClusterNotFound, other read failures raise FetchError, and refused
mutations raise SpecRejected.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .models import (
    ClusterRef,
    ComputeUnit,
    DesiredClusterSpec,
    LiveCluster,
    ObservedClusterStatus,
    StorageClaim,
)


class ClusterClient(ABC):
    @abstractmethod
    def get_status(self, ref: ClusterRef) -> ObservedClusterStatus:
        """Latest status snapshot of the cluster."""

    @abstractmethod
    def get_cluster(self, ref: ClusterRef) -> LiveCluster:
        """The desired-state object as currently stored by the API."""

    @abstractmethod
    def create(self, spec: DesiredClusterSpec) -> None:
        ...

    @abstractmethod
    def update(self, spec: DesiredClusterSpec, resource_version: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def delete(self, ref: ClusterRef) -> None:
        ...

    @abstractmethod
    def list_pods(self, ref: ClusterRef) -> List[ComputeUnit]:
        """Compute units carrying the cluster's ownership labels."""

    @abstractmethod
    def list_claims(self, ref: ClusterRef) -> List[StorageClaim]:
        """Storage claims carrying the cluster's ownership labels."""


def snapshot_accessor(client: ClusterClient, ref: ClusterRef) -> Callable[[], ObservedClusterStatus]:
    """Bind a client and a cluster into the zero-argument fetch the poller drives."""

    def fetch() -> ObservedClusterStatus:
        return client.get_status(ref)

    return fetch
