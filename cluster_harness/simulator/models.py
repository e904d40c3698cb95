"""SQLAlchemy records backing the simulated control plane."""

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

Base = declarative_base()


class ClusterRecord(Base):
    """The desired-state resource plus the status block the reconciler writes."""

    __tablename__ = "clusters"
    id = Column(String, primary_key=True)  # "<namespace>/<name>"
    namespace = Column(String, nullable=False)
    name = Column(String, nullable=False)
    spec = Column(JSON, nullable=False)
    status = Column(JSON, default=dict)
    resource_version = Column(Integer, nullable=False, default=1)
    deleting = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())


class PodRecord(Base):
    __tablename__ = "pods"
    id = Column(String, primary_key=True)  # "<namespace>/<pod name>"
    cluster_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    ordinal = Column(Integer, nullable=False)
    rack_id = Column(Integer, default=0)
    node_name = Column(String, default="")
    node_id = Column(String, default="")
    image = Column(String, nullable=False)
    resources = Column(JSON, default=dict)


# Claims are not owned by the cluster row: they outlive it while terminating
# and, with cascade delete off, after the cluster is gone.
class ClaimRecord(Base):
    __tablename__ = "claims"
    id = Column(String, primary_key=True)  # "<namespace>/<claim name>"
    cluster_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    pod_name = Column(String, nullable=False)
    volume_mode = Column(String, nullable=False)
    cascade_delete = Column(Boolean, default=True)
    phase = Column(String, default="Bound")
    terminating_ticks = Column(Integer, default=0)


def create_session_factory(url: str = "sqlite://"):
    """
    Engine + sessionmaker for the simulator store.

    The default in-memory database lives on a single shared connection so
    every session (and thread) sees the same data.
    """
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
