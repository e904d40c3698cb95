from .evaluator import ConvergenceVerdict, VerdictReason, VerdictState, evaluate
from .poller import SystemClock, timeout_for, wait_until_absent, wait_until_converged

__all__ = [
    "ConvergenceVerdict",
    "VerdictReason",
    "VerdictState",
    "evaluate",
    "SystemClock",
    "timeout_for",
    "wait_until_absent",
    "wait_until_converged",
]
