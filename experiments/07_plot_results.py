#!/usr/bin/env python3
"""
Experiment 07: Result Plots

Plots from the tables written by Experiments 04-06. Does NOT refit models.
  - forest plot of poverty ORs across the model sequence
  - forest plot of poverty ORs across sensitivity scenarios
  - WAIC comparison
  - mediation bars
  - map of the BYM2 MSSA effect for the base and full models

Outputs: results/figures/*.png

Usage:
    python experiments/07_plot_results.py
"""
import sys
import argparse
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.data.loader import load_mssa_shapes
from camrsa.mapping.maps import plot_spatial_effect
from camrsa.visualization.plots import (
    plot_odds_ratio_forest,
    plot_waic_comparison,
    plot_mediation,
)


def _read(path: Path, **kwargs) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing {path}. Run the model experiments first.")
    return pd.read_csv(path, **kwargs)


def main():
    parser = argparse.ArgumentParser(description="Plot results")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    raw = require(cfg, 'data', 'raw')
    terms = require(cfg, 'models', 'exposure_terms')
    out_cfg = cfg.get('output', {})
    tables_dir = get_data_path(out_cfg.get('tables', 'results/tables'))
    fig_dir = get_data_path(out_cfg.get('figures', 'results/figures'))
    dpi = out_cfg.get('dpi', 150)

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - RESULT PLOTS")
    print("=" * 60)

    ors = _read(tables_dir / "odds_ratios.csv")
    plot_odds_ratio_forest(ors, fig_dir / "forest_poverty_models.png", terms=terms, dpi=dpi)

    waic = _read(tables_dir / "waic.csv", index_col='model')
    plot_waic_comparison(waic, fig_dir / "waic_comparison.png", dpi=dpi)

    mediation_path = tables_dir / "mediation.csv"
    if mediation_path.exists():
        plot_mediation(pd.read_csv(mediation_path), fig_dir / "mediation.png", dpi=dpi)
    else:
        print(f"  ⚠️  {mediation_path} not found, mediation plot skipped")

    sens_path = tables_dir / "sensitivity_odds_ratios.csv"
    if sens_path.exists():
        sens = pd.read_csv(sens_path)
        sens['model'] = sens['scenario']
        plot_odds_ratio_forest(
            sens, fig_dir / "forest_poverty_sensitivity.png",
            terms=terms + ['poverty_per10'],
            title="Poverty odds ratios across sensitivity analyses", dpi=dpi
        )

    shapes = load_mssa_shapes(get_data_path(raw['shapes']), crs=cfg['data'].get('crs'))
    for name in (cfg['models'].get('base_model'), cfg['models']['sequence'][-1]['name']):
        effect_path = tables_dir / f"spatial_effects_{name}.csv"
        if effect_path.exists():
            effects = pd.read_csv(effect_path, dtype={'mssa_id': str})
            plot_spatial_effect(shapes, effects, fig_dir / f"map_spatial_effect_{name}.png",
                                title=f"MSSA random effect ({name})", dpi=dpi)

    print("\n✓ Plots complete!")


if __name__ == "__main__":
    main()
