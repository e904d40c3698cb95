import pytest

from cluster_harness import fixtures
from cluster_harness.api.models import (
    ClusterRef,
    DesiredClusterSpec,
    ObservedClusterStatus,
    PodStatus,
    ResourceQuantities,
    ResourceSpec,
)
from cluster_harness.config import HarnessSettings
from cluster_harness.diagnostic_logger import DiagnosticLogger
from cluster_harness.lifecycle.driver import LifecycleDriver
from cluster_harness.simulator import SimulatedControlPlane, create_session_factory

IMAGE = "aerospike/aerospike-server-enterprise:5.4.0.5"
NEW_IMAGE = "aerospike/aerospike-server-enterprise:5.5.0.3"


class FakeClock:
    """Monotonic clock whose sleep() just moves time forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_spec(size=3, image=IMAGE, name="aerocluster"):
    quantities = ResourceQuantities(cpu="200m", memory="1Gi")
    return DesiredClusterSpec(
        ref=ClusterRef("test", name),
        size=size,
        image=image,
        resources=ResourceSpec(requests=quantities, limits=quantities),
    )


def make_status(spec, images=None, node_ids=None, size=None, reconciled=True):
    """Status block as the reconciler would report it for `spec`."""
    images = images or [spec.image] * spec.size
    node_ids = node_ids or [f"BB90{i}" for i in range(len(images))]
    pods = tuple(
        PodStatus(name=f"{spec.ref.name}-0-{i}", node_id=node_id, image=image)
        for i, (image, node_id) in enumerate(zip(images, node_ids))
    )
    return ObservedClusterStatus(
        size=spec.size if size is None else size,
        reconciled_spec=spec if reconciled else None,
        pods=pods,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return HarnessSettings(poll_interval=1.0, base_timeout=30.0, cleanup_interval=1.0, cleanup_timeout=20.0)


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://")


@pytest.fixture
def simulator(session_factory):
    return SimulatedControlPlane(session_factory, terminating_ticks=2)


@pytest.fixture
def diagnostics():
    return DiagnosticLogger()


@pytest.fixture
def driver(simulator, settings, clock, diagnostics):
    with LifecycleDriver(simulator, settings, clock=clock, diagnostics=diagnostics) as d:
        yield d


@pytest.fixture
def fresh_fixture_store(monkeypatch):
    monkeypatch.setattr(fixtures, "_store", None)
