"""
Fit metrics for the CA-MRSA models

Posterior-mean fitted probabilities are checked for:
- Discrimination (AUC-ROC)
- Calibration (Brier score, observed vs expected cases)

Binomial cells are scored with case/control sample weights so the numbers
match what the individual-level rows would give.
"""
import numpy as np
from typing import Dict
from sklearn.metrics import roc_auc_score, brier_score_loss


def _expand_cells(cases: np.ndarray, trials: np.ndarray, p: np.ndarray):
    """Each cell becomes a positive row weighted by cases and a negative
    row weighted by trials - cases."""
    cases = np.asarray(cases, dtype=float)
    trials = np.asarray(trials, dtype=float)
    p = np.asarray(p, dtype=float)
    y = np.concatenate([np.ones_like(cases), np.zeros_like(cases)])
    w = np.concatenate([cases, trials - cases])
    prob = np.concatenate([p, p])
    keep = w > 0
    return y[keep], prob[keep], w[keep]


def compute_auc(cases: np.ndarray, trials: np.ndarray, p: np.ndarray) -> float:
    """
    Compute AUC-ROC of fitted probabilities.

    Returns:
        AUC, or NaN when only one outcome class is present
    """
    y, prob, w = _expand_cells(cases, trials, p)
    if len(np.unique(y)) < 2:
        return np.nan
    return float(roc_auc_score(y, prob, sample_weight=w))


def compute_brier_score(cases: np.ndarray, trials: np.ndarray, p: np.ndarray) -> float:
    """
    Compute Brier score (calibration metric).

    Lower is better. 0.0 = perfect.
    """
    y, prob, w = _expand_cells(cases, trials, p)
    if len(y) == 0:
        return np.nan
    return float(brier_score_loss(y, prob, sample_weight=w))


def compute_fit_metrics(cases: np.ndarray, trials: np.ndarray, p: np.ndarray) -> Dict[str, float]:
    """
    Compute all fit metrics.

    Args:
        cases: Cases per cell (0/1 for individual rows)
        trials: Visits per cell (1 for individual rows)
        p: Posterior-mean fitted probability per cell

    Returns:
        Dictionary with auc, brier, observed and expected case counts
    """
    cases = np.asarray(cases, dtype=float)
    trials = np.asarray(trials, dtype=float)
    p = np.asarray(p, dtype=float)

    return {
        'auc': compute_auc(cases, trials, p),
        'brier': compute_brier_score(cases, trials, p),
        'observed_cases': float(cases.sum()),
        'expected_cases': float((p * trials).sum()),
        'n_visits': int(trials.sum()),
    }


def print_metrics(metrics: Dict[str, float], title: str = "Fit metrics") -> None:
    """Pretty print metrics."""
    print(f"\n{title}")
    print("-" * 40)
    print(f"  AUC:          {metrics.get('auc', np.nan):.3f}")
    print(f"  Brier:        {metrics.get('brier', np.nan):.4f}")
    print(f"  Cases (obs):  {metrics.get('observed_cases', 0):.0f}")
    print(f"  Cases (exp):  {metrics.get('expected_cases', 0):.1f}")
    print(f"  Visits:       {metrics.get('n_visits', 0)}")
