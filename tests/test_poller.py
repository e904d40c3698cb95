"""Tests for the bounded poller"""

import pytest

from cluster_harness.convergence.evaluator import VerdictReason, VerdictState
from cluster_harness.convergence.poller import (
    Deadline,
    timeout_for,
    wait_until_absent,
    wait_until_converged,
)
from cluster_harness.errors import ClusterNotFound, FetchError, WaitTimeout

from conftest import IMAGE, NEW_IMAGE, FakeClock, make_spec, make_status


def scripted(*snapshots):
    """Fetch that replays snapshots in order (exceptions are raised), then repeats the last."""
    remaining = list(snapshots)
    calls = []

    def fetch():
        calls.append(1)
        item = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(item, Exception):
            raise item
        return item

    fetch.calls = calls
    return fetch


def not_found():
    raise ClusterNotFound("cluster", "test/aerocluster")


class TestWaitUntilConverged:
    def test_returns_on_first_converged_tick(self, clock):
        spec = make_spec(size=2)
        fetch = scripted(
            ClusterNotFound("cluster", "test/aerocluster"),
            make_status(spec, size=1),
            make_status(spec),
        )
        verdict = wait_until_converged(fetch, spec, interval=5, deadline=60, clock=clock)
        assert verdict.converged
        assert len(fetch.calls) == 3
        assert clock.sleeps == [5, 5, 5]

    def test_sleeps_before_every_fetch(self, clock):
        spec = make_spec(size=1)
        wait_until_converged(scripted(make_status(spec)), spec, interval=2, deadline=10, clock=clock)
        assert clock.sleeps == [2]

    def test_always_not_found_times_out_at_deadline(self, clock):
        spec = make_spec(size=1)
        start = clock.now
        with pytest.raises(WaitTimeout) as exc:
            wait_until_converged(not_found, spec, interval=3, deadline=10, clock=clock)
        assert clock.now - start == pytest.approx(10)
        assert exc.value.elapsed == pytest.approx(10)
        assert exc.value.ticks == 4
        assert exc.value.verdict.reason == VerdictReason.NOT_FOUND
        assert isinstance(exc.value, TimeoutError)

    def test_fetch_error_aborts_immediately(self, clock):
        spec = make_spec(size=1)
        fetch = scripted(make_status(spec, size=0), FetchError("boom"))
        with pytest.raises(FetchError):
            wait_until_converged(fetch, spec, interval=1, deadline=100, clock=clock)
        assert len(fetch.calls) == 2

    def test_timeout_with_lagging_pods_reports_divergence(self, clock):
        spec = make_spec(size=3, image=NEW_IMAGE)
        stuck = make_status(spec, images=[IMAGE, NEW_IMAGE, NEW_IMAGE])
        with pytest.raises(WaitTimeout) as exc:
            wait_until_converged(scripted(stuck), spec, interval=1, deadline=3, clock=clock)
        assert exc.value.verdict.state == VerdictState.DIVERGED
        assert exc.value.verdict.reason == VerdictReason.IMAGE_MISMATCH
        assert "aerocluster-0-0" in str(exc.value)

    def test_timeout_message_names_the_invariant(self, clock):
        spec = make_spec(size=2)
        with pytest.raises(WaitTimeout) as exc:
            wait_until_converged(
                scripted(make_status(spec, node_ids=["BB901", ""])), spec, interval=1, deadline=2, clock=clock
            )
        assert exc.value.verdict.reason == VerdictReason.MISSING_NODE_ID
        assert "node id" in str(exc.value)


class TestWaitUntilAbsent:
    def test_not_found_is_success(self, clock):
        fetch = scripted(object(), object(), ClusterNotFound("cluster", "x"))
        assert wait_until_absent(fetch, "test/x", interval=1, deadline=10, clock=clock) == 3

    def test_present_object_times_out(self, clock):
        with pytest.raises(WaitTimeout) as exc:
            wait_until_absent(scripted(object()), "test/x", interval=1, deadline=5, clock=clock)
        assert exc.value.stuck == ["test/x"]
        assert exc.value.elapsed == pytest.approx(5)

    def test_other_errors_abort(self, clock):
        with pytest.raises(FetchError):
            wait_until_absent(scripted(FetchError("denied")), "test/x", interval=1, deadline=5, clock=clock)


class TestTiming:
    def test_timeout_scales_with_size(self):
        assert timeout_for(1, 300) == 300
        assert timeout_for(4, 300) == 1200
        assert timeout_for(0, 300) == 300

    def test_deadline_never_oversleeps(self):
        clock = FakeClock()
        deadline = Deadline(clock, 4)
        deadline.wait(3)
        deadline.wait(3)
        assert clock.sleeps == [3, 1]
        assert deadline.expired()
