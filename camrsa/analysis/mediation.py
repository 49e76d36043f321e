"""
Mediation analysis by the difference method.

For each exposure term (poverty category vs <10%), the share of the
total (confounder-adjusted) effect explained by a candidate mediator is

    PE = 100 * (b_base - b_mediated) / b_base

where b_base comes from the adjusted model without the mediator and
b_mediated from the same model with the mediator added. Both models are
fitted separately, so posterior draws are paired by index (after
truncating to the shorter chain set) to propagate uncertainty; the
interval is therefore approximate.
"""
import numpy as np
import pandas as pd
from typing import Dict, List, Mapping


# |median b_base| below this gives an undefined proportion
ZERO_EFFECT_TOL = 1e-8


def mediation_difference(
    base_draws: pd.DataFrame,
    mediated_draws: pd.DataFrame,
    terms: List[str],
    interval: float = 0.95
) -> pd.DataFrame:
    """
    Proportion of the exposure effect explained by the mediator(s).

    Args:
        base_draws: Coefficient draws of the base model (columns = terms)
        mediated_draws: Coefficient draws of the model with the mediator
        terms: Exposure terms present in both models
        interval: Width of the equal-tailed interval

    Returns:
        One row per term with base/mediated OR medians and the percent
        explained (median and interval)
    """
    missing = [t for t in terms if t not in base_draws.columns or t not in mediated_draws.columns]
    if missing:
        raise KeyError(f"Exposure terms missing from model draws: {missing}")

    lo, hi = (1 - interval) / 2, 1 - (1 - interval) / 2
    n = min(len(base_draws), len(mediated_draws))

    rows = []
    for term in terms:
        b0 = base_draws[term].to_numpy()[:n]
        b1 = mediated_draws[term].to_numpy()[:n]

        if abs(np.median(b0)) < ZERO_EFFECT_TOL:
            pct = np.full(n, np.nan)
        else:
            pct = 100.0 * (b0 - b1) / b0

        row = {
            'term': term,
            'or_base': float(np.exp(np.median(b0))),
            'or_mediated': float(np.exp(np.median(b1))),
            'pct_explained': float(np.nanmedian(pct)) if np.isfinite(pct).any() else np.nan,
            'pct_lower': float(np.nanquantile(pct, lo)) if np.isfinite(pct).any() else np.nan,
            'pct_upper': float(np.nanquantile(pct, hi)) if np.isfinite(pct).any() else np.nan,
            # Point estimate from posterior medians (the classic difference method)
            'pct_explained_point': (
                float(100.0 * (np.median(b0) - np.median(b1)) / np.median(b0))
                if abs(np.median(b0)) >= ZERO_EFFECT_TOL else np.nan
            ),
        }
        rows.append(row)

    return pd.DataFrame(rows)


def run_mediation(
    coefficient_draws: Mapping[str, pd.DataFrame],
    base_model: str,
    mediator_models: List[str],
    terms: List[str],
    interval: float = 0.95
) -> pd.DataFrame:
    """
    Difference-method mediation for every mediator model against the base.

    Args:
        coefficient_draws: {model name: coefficient draws DataFrame}
        base_model: Name of the adjusted model without mediators
        mediator_models: Names of models that add mediators
        terms: Exposure terms
        interval: Width of the equal-tailed interval

    Returns:
        Long table with one row per (mediator model, term)
    """
    if base_model not in coefficient_draws:
        raise KeyError(f"Base model '{base_model}' has no draws")

    parts = []
    for name in mediator_models:
        if name not in coefficient_draws:
            print(f"  ⚠️  Mediation: model '{name}' has no draws, skipped")
            continue
        res = mediation_difference(
            coefficient_draws[base_model], coefficient_draws[name], terms, interval
        )
        res.insert(0, 'mediator_model', name)
        parts.append(res)

    if not parts:
        return pd.DataFrame()
    return pd.concat(parts, ignore_index=True)


def mediator_models_from_specs(specs: List, base_model: str) -> List[str]:
    """Models that share the base model's confounders and add mediators."""
    by_name: Dict[str, object] = {s.name: s for s in specs}
    if base_model not in by_name:
        raise ValueError(f"Base model '{base_model}' not in model sequence")
    base = by_name[base_model]
    return [
        s.name for s in specs
        if s.name != base_model and s.exposure and s.mediators
        and set(base.confounders) <= set(s.confounders)
    ]
