"""
WAIC for model comparison.

Computed from the pointwise log-likelihood matrix produced in the
`generated quantities` block of the Stan models (Vehtari, Gelman & Gabry
2017):

    lppd_i   = log mean_s exp(log_lik[s, i])
    p_waic_i = var_s log_lik[s, i]
    elpd_i   = lppd_i - p_waic_i
    WAIC     = -2 * sum_i elpd_i

With binomial cells the pointwise terms are per cell, so WAIC is only
comparable between models fitted to the same cells.
"""
import numpy as np
import pandas as pd
from typing import Dict, Mapping
from scipy.special import logsumexp


# Pointwise variance above which WAIC is considered unreliable
P_WAIC_WARN = 0.4


def compute_waic(log_lik: np.ndarray) -> Dict[str, float]:
    """
    Compute WAIC from a (draws, observations) log-likelihood matrix.

    Args:
        log_lik: Array of shape (S, N)

    Returns:
        Dictionary with elpd_waic, p_waic, waic, se, n_obs and
        n_high_p_waic (observations with pointwise p_waic > 0.4)
    """
    log_lik = np.asarray(log_lik, dtype=float)
    if log_lik.ndim != 2:
        raise ValueError(f"log_lik must be 2-D (draws, observations), got shape {log_lik.shape}")
    S, N = log_lik.shape
    if S < 2:
        raise ValueError("Need at least two posterior draws to compute WAIC")

    lppd_i = logsumexp(log_lik, axis=0) - np.log(S)
    p_waic_i = np.var(log_lik, axis=0, ddof=1)
    elpd_i = lppd_i - p_waic_i
    waic_i = -2 * elpd_i

    return {
        'elpd_waic': float(np.sum(elpd_i)),
        'p_waic': float(np.sum(p_waic_i)),
        'waic': float(np.sum(waic_i)),
        'se': float(np.sqrt(N * np.var(waic_i, ddof=1))) if N > 1 else 0.0,
        'n_obs': int(N),
        'n_high_p_waic': int(np.sum(p_waic_i > P_WAIC_WARN)),
    }


def compare_waic(results: Mapping[str, Dict[str, float]]) -> pd.DataFrame:
    """
    Rank models by WAIC (lower is better).

    Args:
        results: {model name: compute_waic() output}

    Returns:
        DataFrame indexed by model with waic, se, p_waic, elpd_waic and
        delta_waic relative to the best model
    """
    if not results:
        raise ValueError("No WAIC results to compare")

    table = pd.DataFrame.from_dict(results, orient='index')
    table.index.name = 'model'
    table = table.sort_values('waic')
    table['delta_waic'] = table['waic'] - table['waic'].iloc[0]
    cols = ['waic', 'se', 'delta_waic', 'p_waic', 'elpd_waic', 'n_obs', 'n_high_p_waic']
    return table[[c for c in cols if c in table.columns]]


def print_waic_table(table: pd.DataFrame, title: str = "WAIC comparison") -> None:
    """Pretty print a compare_waic() table."""
    print(f"\n{title}")
    print("-" * 62)
    print(f"{'Model':<22} {'WAIC':>10} {'SE':>8} {'dWAIC':>8} {'p_waic':>8}")
    print("-" * 62)
    for name, row in table.iterrows():
        print(f"{name:<22} {row['waic']:>10.1f} {row['se']:>8.1f} "
              f"{row['delta_waic']:>8.1f} {row['p_waic']:>8.1f}")
