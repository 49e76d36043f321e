"""
Result plots: odds-ratio forest plot, WAIC comparison, mediation bars.

All plots read the CSV tables written by the model-fitting experiments so
they can be regenerated without refitting.
"""
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from camrsa.common.paths import ensure_parent


plt.style.use('seaborn-v0_8-whitegrid')
DPI = 150


def _save(fig, output_path: str, dpi: int) -> Path:
    output_path = ensure_parent(output_path)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    print(f"  → Saved plot to {output_path}")
    return output_path


def plot_odds_ratio_forest(
    or_table: pd.DataFrame,
    output_path: str,
    terms: Optional[List[str]] = None,
    title: str = "Odds ratios for area poverty",
    dpi: int = DPI
) -> Path:
    """
    Forest plot of odds ratios with credible intervals.

    Args:
        or_table: Concatenated BaseModel.odds_ratios() tables (model, term, or_*)
        output_path: PNG path
        terms: Terms to show (default: all); one row per (model, term)
        title: Figure title
        dpi: Output resolution
    """
    table = or_table if terms is None else or_table[or_table['term'].isin(terms)]
    if table.empty:
        raise ValueError("No odds ratios to plot")

    table = table.reset_index(drop=True)
    models = list(dict.fromkeys(table['model']))
    colors = dict(zip(models, plt.get_cmap('tab10')(np.linspace(0, 1, max(len(models), 1)))))

    fig, ax = plt.subplots(figsize=(9, 0.35 * len(table) + 1.5))
    y = np.arange(len(table))[::-1]
    for yi, (_, row) in zip(y, table.iterrows()):
        ax.errorbar(
            row['or_median'], yi,
            xerr=[[row['or_median'] - row['or_lower']], [row['or_upper'] - row['or_median']]],
            fmt='o', color=colors[row['model']], capsize=3, markersize=5
        )

    ax.axvline(1.0, color='black', linestyle='--', linewidth=0.8)
    ax.set_xscale('log')
    ax.set_yticks(y)
    ax.set_yticklabels([f"{m}: {t}" for m, t in zip(table['model'], table['term'])], fontsize=8)
    ax.set_xlabel("Odds ratio (posterior median, 95% CrI)")
    ax.set_title(title)
    return _save(fig, output_path, dpi)


def plot_waic_comparison(waic_table: pd.DataFrame, output_path: str, dpi: int = DPI) -> Path:
    """Horizontal bars of delta WAIC with +/- 1 SE of WAIC."""
    table = waic_table.sort_values('waic', ascending=False)

    fig, ax = plt.subplots(figsize=(8, 0.45 * len(table) + 1.5))
    ax.barh(table.index.astype(str), table['delta_waic'], xerr=table['se'],
            color='steelblue', alpha=0.8, capsize=3)
    ax.set_xlabel("Δ WAIC relative to best model (lower is better)")
    ax.set_title("Model comparison")
    return _save(fig, output_path, dpi)


def plot_mediation(mediation_table: pd.DataFrame, output_path: str, dpi: int = DPI) -> Path:
    """
    Grouped bars of the percent of the poverty effect explained by each
    mediator model, one bar per exposure term, with intervals.
    """
    if mediation_table.empty:
        raise ValueError("Mediation table is empty")

    pivot = mediation_table.pivot(index='mediator_model', columns='term', values='pct_explained')
    lower = mediation_table.pivot(index='mediator_model', columns='term', values='pct_lower')
    upper = mediation_table.pivot(index='mediator_model', columns='term', values='pct_upper')

    n_models, n_terms = pivot.shape
    width = 0.8 / n_terms
    x = np.arange(n_models)

    fig, ax = plt.subplots(figsize=(max(8, 1.2 * n_models), 5))
    for k, term in enumerate(pivot.columns):
        est = pivot[term].to_numpy()
        err = np.vstack([est - lower[term].to_numpy(), upper[term].to_numpy() - est])
        ax.bar(x + k * width, est, width, yerr=err, capsize=2, label=term)

    ax.axhline(0, color='black', linewidth=0.8)
    ax.set_xticks(x + width * (n_terms - 1) / 2)
    ax.set_xticklabels(pivot.index, rotation=30, ha='right')
    ax.set_ylabel("% of poverty effect explained")
    ax.set_title("Mediation (difference method)")
    ax.legend(fontsize=8)
    return _save(fig, output_path, dpi)
