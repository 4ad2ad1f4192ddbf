# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the miner.
"""

from .metrics import metrics_registry, start_metrics_server

__all__ = ['metrics_registry', 'start_metrics_server']
