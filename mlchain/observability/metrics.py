# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports mining metrics in Prometheus format.

Metrics:
- Mining attempts by outcome (accepted / rejected / failed)
- Operations executed by kind, operation duration, FLOPs executed
- Work submissions by status
- Current difficulty, last measured TFLOPS
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry, start_http_server

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# MINING METRICS
# ═══════════════════════════════════════════════════════════════════

mining_attempts_total = Counter(
    'mlchain_mining_attempts_total',
    'Total number of mining attempts',
    ['outcome'],
    registry=metrics_registry
)

operations_total = Counter(
    'mlchain_operations_total',
    'Total number of ML operations executed',
    ['kind', 'backend'],
    registry=metrics_registry
)

operation_duration_seconds = Histogram(
    'mlchain_operation_duration_seconds',
    'Wall time of a single ML operation',
    ['kind'],
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30],
    registry=metrics_registry
)

flops_total = Counter(
    'mlchain_flops_total',
    'Total FLOPs executed (closed-form counts)',
    registry=metrics_registry
)

submissions_total = Counter(
    'mlchain_submissions_total',
    'Work results handed to the ledger',
    ['status'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# NETWORK METRICS
# ═══════════════════════════════════════════════════════════════════

current_difficulty = Gauge(
    'mlchain_current_difficulty',
    'Current network difficulty',
    registry=metrics_registry
)

miner_teraflops = Gauge(
    'mlchain_miner_teraflops',
    'TFLOPS measured over the last mining attempt',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# UPDATE FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(kind: str, backend: str, duration_seconds: float, flops: int):
    operations_total.labels(kind=kind, backend=backend).inc()
    operation_duration_seconds.labels(kind=kind).observe(duration_seconds)
    flops_total.inc(flops)


def record_attempt(outcome: str, teraflops: float = None):
    """
    Count one mining attempt.

    Args:
        outcome: accepted, rejected or failed
        teraflops: measured rate, only for attempts that completed
    """
    mining_attempts_total.labels(outcome=outcome).inc()
    if teraflops is not None:
        miner_teraflops.set(teraflops)


def record_submission(status: str):
    submissions_total.labels(status=status).inc()


def set_difficulty(difficulty: int):
    current_difficulty.set(difficulty)


def start_metrics_server(port: int):
    """Serve the registry on http://0.0.0.0:{port}/metrics"""
    start_http_server(port, registry=metrics_registry)
