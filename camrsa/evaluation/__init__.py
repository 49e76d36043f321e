"""Evaluation module - WAIC model comparison and fit metrics."""

from camrsa.evaluation.waic import (
    compute_waic,
    compare_waic,
    print_waic_table,
    P_WAIC_WARN
)

from camrsa.evaluation.metrics import (
    compute_auc,
    compute_brier_score,
    compute_fit_metrics,
    print_metrics
)

__all__ = [
    # WAIC module
    'compute_waic',
    'compare_waic',
    'print_waic_table',
    'P_WAIC_WARN',
    # Metrics module
    'compute_auc',
    'compute_brier_score',
    'compute_fit_metrics',
    'print_metrics'
]
