# File: metrics.py

from prometheus_client import Counter, Histogram

METRICS = {
    "poll_ticks": Counter(
        "harness_poll_ticks_total",
        "Snapshots fetched by bounded waits",
        ["wait"],
    ),
    "wait_duration": Histogram(
        "harness_wait_duration_seconds",
        "Time spent in a bounded wait until it ended",
        ["wait", "outcome"],
        buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800),
    ),
    "lifecycle_operations": Counter(
        "harness_lifecycle_operations_total",
        "Lifecycle verbs issued by the driver",
        ["verb", "outcome"],
    ),
}
