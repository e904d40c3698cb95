from .control_plane import SimulatedControlPlane
from .models import create_session_factory
from .reconciler import SimulatedReconciler

__all__ = ["SimulatedControlPlane", "SimulatedReconciler", "create_session_factory"]
