"""Convergence verification and lifecycle harness for operator-managed database clusters."""

__version__ = "0.1.0"
