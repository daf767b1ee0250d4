# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Prometheus metrics for the staking ledger.
"""

from .metrics import metrics_registry, record_call, update_metrics

__all__ = ['metrics_registry', 'record_call', 'update_metrics']
