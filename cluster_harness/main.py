#!/usr/bin/env python3
"""
Cluster Harness - Scenario Runner

Runs the basic lifecycle scenario end to end:
- deploy a cluster and wait for convergence
- validate per-pod resources
- scale out, then upgrade the server image
- delete and wait for pods and storage to be released

By default the scenario runs against the in-process simulated control
plane with its reconciler in a background thread. With --kube it runs
against the cluster in the current kubeconfig context.
"""

import argparse
import logging
import sys
import time
import uuid
from dataclasses import replace

from prometheus_client import start_http_server

from .api.models import ClusterRef
from .config import HarnessSettings
from .diagnostic_logger import DiagnosticLogger, configure_logging
from .errors import HarnessError
from .fixtures import basic_cluster_spec
from .lifecycle.driver import LifecycleDriver

logger = logging.getLogger("harness.main")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cluster-harness",
        description="Create, verify, update and tear down a managed database cluster.",
    )
    parser.add_argument("--config", help="YAML settings file (overrides HARNESS_* variables)")
    parser.add_argument("--kube", action="store_true", help="run against the current kubeconfig context")
    parser.add_argument("--context", help="kubeconfig context to use with --kube")
    parser.add_argument("--namespace", help="namespace for the test cluster")
    parser.add_argument("--name", help="cluster name (default: random)")
    parser.add_argument("--size", type=int, default=2, help="initial node count")
    parser.add_argument("--metrics-port", type=int, help="serve Prometheus metrics on this port while running")
    parser.add_argument("--report", help="write the JSON diagnostic report here")
    parser.add_argument("--log-level", help="logging level (default from settings)")
    return parser.parse_args(argv)


def build_simulator(settings: HarnessSettings):
    from .simulator import SimulatedControlPlane, create_session_factory

    control_plane = SimulatedControlPlane(
        create_session_factory(),
        auto_reconcile=False,
        reconcile_interval=min(settings.poll_interval, 0.2),
    )
    control_plane.reconciler.start()
    return control_plane


def run_scenario(driver: LifecycleDriver, settings: HarnessSettings, ref: ClusterRef, size: int) -> None:
    spec = basic_cluster_spec(ref, size, image=settings.current_image)

    handle = driver.create_and_verify(spec)
    driver.validate_resources(handle)

    driver.update_and_verify(handle, replace(spec, size=size + 1), merge_fields=["size"])
    driver.validate_resources(handle)

    driver.update_and_verify(handle, replace(spec, image=settings.upgrade_image), merge_fields=["image"])
    driver.validate_resources(handle)

    driver.delete_and_verify(handle)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = HarnessSettings.load(args.config)
    if args.namespace:
        settings = replace(settings, namespace=args.namespace)
    configure_logging(args.log_level or settings.log_level, settings.log_file)
    if args.metrics_port:
        start_http_server(args.metrics_port)

    ref = ClusterRef(settings.namespace, args.name or f"harness-{uuid.uuid4().hex[:6]}")
    simulator = None
    if args.kube:
        from .api.kubernetes_client import KubernetesClusterClient

        client = KubernetesClusterClient.from_kubeconfig(settings, context=args.context)
    else:
        # the simulator converges in well under a second per step
        settings = replace(settings, poll_interval=min(settings.poll_interval, 0.5), cleanup_interval=0.2)
        simulator = client = build_simulator(settings)

    diagnostics = DiagnosticLogger()
    started = time.time()
    logger.info("=" * 60)
    logger.info(f"  Cluster Harness: {ref} ({'kubernetes' if args.kube else 'simulator'})")
    logger.info("=" * 60)

    status = 0
    try:
        with LifecycleDriver(client, settings, diagnostics=diagnostics) as driver:
            run_scenario(driver, settings, ref, args.size)
    except HarnessError as e:
        logger.error(f"Scenario failed: {e}")
        status = 1
    finally:
        if simulator is not None:
            simulator.reconciler.stop()

    report = diagnostics.generate_report(args.report)
    logger.info(
        f"Finished in {time.time() - started:.1f}s: "
        f"{len(report['successes'])} ok, {len(report['errors'])} errors"
    )
    return status


if __name__ == "__main__":
    sys.exit(main())
