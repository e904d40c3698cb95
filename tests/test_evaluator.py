"""Tests for the convergence evaluator"""

from dataclasses import replace

import pytest

from cluster_harness.convergence.evaluator import (
    VerdictReason,
    VerdictState,
    evaluate,
    images_equal,
    parse_image,
)

from conftest import IMAGE, NEW_IMAGE, make_spec, make_status


class TestEvaluate:
    def test_not_found_is_pending(self):
        verdict = evaluate(make_spec(), None)
        assert verdict.state == VerdictState.PENDING
        assert verdict.reason == VerdictReason.NOT_FOUND

    def test_converged(self):
        spec = make_spec(size=3)
        verdict = evaluate(spec, make_status(spec))
        assert verdict.converged
        assert verdict.reason == VerdictReason.CONVERGED
        assert verdict.advisories == ()

    def test_size_mismatch(self):
        spec = make_spec(size=3)
        verdict = evaluate(spec, make_status(spec, size=2))
        assert verdict.state == VerdictState.PENDING
        assert verdict.reason == VerdictReason.SIZE_MISMATCH

    def test_pod_count_mismatch(self):
        spec = make_spec(size=3)
        verdict = evaluate(spec, make_status(spec, images=[IMAGE, IMAGE]))
        assert verdict.reason == VerdictReason.POD_COUNT_MISMATCH

    def test_spec_not_written_back(self):
        spec = make_spec(size=2)
        verdict = evaluate(spec, make_status(spec, reconciled=False))
        assert verdict.reason == VerdictReason.SPEC_MISMATCH

    def test_stale_reconciled_spec(self):
        spec = make_spec(size=2)
        observed = replace(make_status(spec), reconciled_spec=replace(spec, image=NEW_IMAGE))
        assert evaluate(spec, observed).reason == VerdictReason.SPEC_MISMATCH

    def test_reconciled_spec_ignores_cluster_reference(self):
        spec = make_spec(size=1)
        observed = replace(make_status(spec), reconciled_spec=make_spec(size=1, name="other"))
        assert evaluate(spec, observed).converged

    def test_missing_node_id(self):
        spec = make_spec(size=3)
        verdict = evaluate(spec, make_status(spec, node_ids=["BB901", "", "BB903"]))
        assert verdict.reason == VerdictReason.MISSING_NODE_ID
        assert "aerocluster-0-1" in verdict.message

    def test_size_checked_before_node_ids(self):
        spec = make_spec(size=3)
        verdict = evaluate(spec, make_status(spec, size=1, node_ids=["", "", ""]))
        assert verdict.reason == VerdictReason.SIZE_MISMATCH

    def test_rolling_upgrade_is_advisory(self):
        spec = make_spec(size=3, image=NEW_IMAGE)
        verdict = evaluate(spec, make_status(spec, images=[IMAGE, IMAGE, NEW_IMAGE]))
        assert verdict.state == VerdictState.PENDING
        assert verdict.reason == VerdictReason.IMAGE_MISMATCH
        # every lagging pod is reported, not just the first
        assert len(verdict.advisories) == 2
        assert "aerocluster-0-0" in verdict.advisories[0]
        assert "aerocluster-0-1" in verdict.advisories[1]

    def test_rolling_upgrade_completes(self):
        spec = make_spec(size=3, image=NEW_IMAGE)
        verdict = evaluate(spec, make_status(spec, images=[NEW_IMAGE] * 3))
        assert verdict.converged

    def test_idempotent(self):
        spec = make_spec(size=3, image=NEW_IMAGE)
        observed = make_status(spec, images=[IMAGE, NEW_IMAGE, NEW_IMAGE])
        assert evaluate(spec, observed) == evaluate(spec, observed)


class TestEscalate:
    def test_advisory_verdict_escalates_to_diverged(self):
        spec = make_spec(size=2, image=NEW_IMAGE)
        verdict = evaluate(spec, make_status(spec, images=[IMAGE, NEW_IMAGE]))
        escalated = verdict.escalate()
        assert escalated.state == VerdictState.DIVERGED
        assert escalated.reason == VerdictReason.IMAGE_MISMATCH
        assert escalated.advisories == verdict.advisories

    def test_plain_pending_stays_pending(self):
        verdict = evaluate(make_spec(), None)
        assert verdict.escalate() == verdict


class TestImages:
    @pytest.mark.parametrize(
        "desired, actual",
        [
            ("aerospike:5.4.0.5", "docker.io/library/aerospike:5.4.0.5"),
            ("redis", "redis:latest"),
            ("aerospike/aerospike-server-enterprise:5.4.0.5",
             "docker.io/aerospike/aerospike-server-enterprise:5.4.0.5"),
            ("localhost:5000/db:1", "localhost:5000/db:1"),
        ],
    )
    def test_equal(self, desired, actual):
        assert images_equal(desired, actual)

    @pytest.mark.parametrize(
        "desired, actual",
        [
            (IMAGE, NEW_IMAGE),
            ("quay.io/aerospike/server:1", "aerospike/server:1"),
            ("redis", "redis:6"),
        ],
    )
    def test_not_equal(self, desired, actual):
        assert not images_equal(desired, actual)

    def test_parse_registry_port_and_digest(self):
        assert parse_image("registry.local:5000/team/db@sha256:abc") == (
            "registry.local:5000",
            "team/db",
            "@sha256:abc",
        )
