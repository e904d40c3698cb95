"""
Bounded Poller

Fixed-interval polling against a monotonic deadline. Each tick sleeps,
fetches a fresh snapshot and evaluates it; nothing is cached between ticks.
A not-found read counts as "not yet"; any other read failure aborts the
wait at once.
"""

import logging
import time
from typing import Any, Callable, Optional, Union

from ..api.models import DesiredClusterSpec, ObservedClusterStatus
from ..errors import ClusterNotFound, WaitTimeout
from ..metrics import METRICS
from .evaluator import ConvergenceVerdict, evaluate

logger = logging.getLogger("harness.poller")


class SystemClock:
    """Monotonic time and a blocking sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class Deadline:
    """Elapsed-time bookkeeping for one wait, possibly spanning several phases."""

    def __init__(self, clock, seconds: float):
        self.clock = clock
        self.seconds = seconds
        self.start = clock.monotonic()

    def elapsed(self) -> float:
        return self.clock.monotonic() - self.start

    def remaining(self) -> float:
        return self.seconds - self.elapsed()

    def expired(self) -> bool:
        return self.elapsed() >= self.seconds

    def wait(self, interval: float) -> None:
        """Sleep one interval, never past the deadline."""
        self.clock.sleep(max(0.0, min(interval, self.remaining())))


def start_timer(clock, deadline: Union[float, Deadline]) -> Deadline:
    """A fresh Deadline of `deadline` seconds, or `deadline` itself when a wait continues a longer one."""
    if isinstance(deadline, Deadline):
        return deadline
    return Deadline(clock, deadline)


def timeout_for(size: int, base_timeout: float) -> float:
    """Larger clusters legitimately take longer; scale linearly by node count."""
    return base_timeout * max(1, size)


def _observe(wait: str, deadline: Deadline, outcome: str) -> None:
    METRICS["wait_duration"].labels(wait=wait, outcome=outcome).observe(deadline.elapsed())


def wait_until_converged(
    fetch: Callable[[], ObservedClusterStatus],
    desired: DesiredClusterSpec,
    interval: float,
    deadline: Union[float, Deadline],
    clock=None,
    wait: str = "converge",
) -> ConvergenceVerdict:
    """
    Poll until the cluster converges on `desired`.

    Returns the converged verdict. Raises WaitTimeout carrying the last
    verdict when `deadline` seconds pass first, and lets FetchError (or
    any other read failure) through untouched.
    """
    clock = clock or SystemClock()
    timer = start_timer(clock, deadline)
    ticks = 0
    last: Optional[ConvergenceVerdict] = None

    while True:
        timer.wait(interval)
        ticks += 1
        METRICS["poll_ticks"].labels(wait=wait).inc()

        try:
            observed: Optional[ObservedClusterStatus] = fetch()
        except ClusterNotFound:
            observed = None
        except Exception:
            _observe(wait, timer, "error")
            raise

        verdict = evaluate(desired, observed)
        if verdict != last:
            if verdict.advisories:
                logger.warning(f"{desired.ref}: {verdict}")
            else:
                logger.info(f"{desired.ref}: {verdict}")
        last = verdict

        if verdict.converged:
            _observe(wait, timer, "converged")
            logger.info(f"{desired.ref}: converged after {ticks} ticks ({timer.elapsed():.1f}s)")
            return verdict

        if timer.expired():
            _observe(wait, timer, "timeout")
            final = verdict.escalate()
            raise WaitTimeout(
                wait=f"{wait} {desired.ref}",
                deadline=timer.seconds,
                elapsed=timer.elapsed(),
                ticks=ticks,
                detail=str(final),
                verdict=final,
            )


def wait_until_absent(
    fetch: Callable[[], Any],
    name: str,
    interval: float,
    deadline: Union[float, Deadline],
    clock=None,
    wait: str = "absent",
) -> int:
    """
    Poll until `fetch` raises ClusterNotFound. Returns the tick count.

    The structural dual of wait_until_converged: not-found is the success
    terminal here, a visible object means keep waiting.
    """
    clock = clock or SystemClock()
    timer = start_timer(clock, deadline)
    ticks = 0

    while True:
        timer.wait(interval)
        ticks += 1
        METRICS["poll_ticks"].labels(wait=wait).inc()

        try:
            fetch()
        except ClusterNotFound:
            _observe(wait, timer, "absent")
            logger.info(f"{name}: gone after {ticks} ticks")
            return ticks
        except Exception:
            _observe(wait, timer, "error")
            raise

        logger.debug(f"Waiting for {name} to be deleted")
        if timer.expired():
            _observe(wait, timer, "timeout")
            raise WaitTimeout(
                wait=f"{wait} {name}",
                deadline=timer.seconds,
                elapsed=timer.elapsed(),
                ticks=ticks,
                detail=f"{name} still present",
                stuck=[name],
            )
