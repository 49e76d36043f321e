#!/usr/bin/env python3
"""
Experiment 04: Fit the Model Sequence

Fits every model of `models.sequence` as a binomial logistic regression
with a BYM2 MSSA random effect:
  m0 null (random effect only) -> m1 poverty -> m2 adjusted for individual
  confounders -> m3.. one candidate mediator each -> full model

All models share one complete-case sample and one set of binomial cells,
so their WAIC values are directly comparable.

Outputs (results/):
  tables/odds_ratios.csv       exponentiated coefficients, all models
  tables/waic.csv              WAIC comparison
  tables/fit_metrics.csv       AUC / Brier of fitted probabilities
  tables/spatial_effects_<model>.csv
  models/<model>.pkl           pickled fits (posterior draws)
  models/diagnostics.json      MCMC diagnostics

Usage:
    python experiments/04_fit_models.py
    python experiments/04_fit_models.py --models m1_poverty m2_adjusted --chains 2
"""
import sys
import json
import argparse
import traceback
from pathlib import Path

import numpy as np
import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.common.paths import ensure_parent
from camrsa.data.loader import load_mssa_shapes
from camrsa.features.recode import recode_dataset
from camrsa.features.feature_sets import model_specs_from_config, select_covariates, all_covariates
from camrsa.spatial.adjacency import build_adjacency, compute_scaling_factor
from camrsa.models.bayesian.bym2_logistic import BYM2Logistic
from camrsa.evaluation.waic import compare_waic, print_waic_table
from camrsa.evaluation.metrics import compute_fit_metrics, print_metrics


def main():
    parser = argparse.ArgumentParser(description="Fit the BYM2 model sequence")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    parser.add_argument(
        "--models",
        nargs="*",
        default=None,
        help="Subset of model names to fit (default: whole sequence)"
    )
    parser.add_argument("--chains", type=int, default=None, help="Override MCMC chains")
    parser.add_argument("--iter-warmup", type=int, default=None, help="Override warmup iterations")
    parser.add_argument("--iter-sampling", type=int, default=None, help="Override sampling iterations")
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    raw = require(cfg, 'data', 'raw')
    processed = require(cfg, 'data', 'processed')
    models_cfg = dict(require(cfg, 'models'))
    out_cfg = cfg.get('output', {})
    tables_dir = get_data_path(out_cfg.get('tables', 'results/tables'))
    models_dir = get_data_path(out_cfg.get('models', 'results/models'))
    interval = models_cfg.get('interval', 0.95)

    mcmc = dict(models_cfg.get('mcmc', {}))
    for key, value in (('chains', args.chains), ('iter_warmup', args.iter_warmup),
                       ('iter_sampling', args.iter_sampling)):
        if value is not None:
            mcmc[key] = value
    models_cfg['mcmc'] = mcmc

    specs = model_specs_from_config(models_cfg)
    if args.models:
        unknown = set(args.models) - {s.name for s in specs}
        if unknown:
            raise ValueError(f"Unknown models: {sorted(unknown)}")

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - BYM2 MODEL SEQUENCE")
    print("=" * 60)
    print(f"Models: {[s.name for s in specs]}")
    print(f"MCMC: {mcmc}")

    # Data
    df = pd.read_parquet(get_data_path(processed['analysis']))
    df = recode_dataset(df, require(cfg, 'recode'))

    cell_covariates = all_covariates(specs)
    n_before = len(df)
    df = df.dropna(subset=cell_covariates + ['case']).reset_index(drop=True)
    print(f"\nComplete cases: {len(df)}/{n_before} visits, {int(df['case'].sum())} cases")

    # Spatial graph
    print("\nBuilding MSSA adjacency graph...")
    shapes = load_mssa_shapes(get_data_path(raw['shapes']), crs=cfg['data'].get('crs'))
    graph = build_adjacency(shapes)
    scaling_factor = compute_scaling_factor(graph)
    print(f"  → {graph.n_areas} MSSAs, {graph.n_edges} edges, scaling factor {scaling_factor:.4f}")

    or_tables = []
    waic_results = {}
    fit_metrics = {}
    diagnostics = {}

    for spec in specs:
        if args.models and spec.name not in args.models:
            continue

        covariates = select_covariates(spec)
        print("\n" + "=" * 60)
        print(f"FITTING {spec.name}")
        print("=" * 60)
        print(f"Covariates: {covariates or '(random effect only)'}")

        model = BYM2Logistic(spec.name, graph, scaling_factor=scaling_factor, config=models_cfg)
        try:
            model.fit(df, covariates, cell_covariates=cell_covariates)
        except Exception as e:
            print(f"\nERROR fitting {spec.name}: {e}")
            traceback.print_exc()
            continue

        model.print_diagnostics()
        diagnostics[spec.name] = model.get_diagnostics()
        diagnostics[spec.name]['variance_components'] = model.variance_components()

        ors = model.odds_ratios(interval)
        or_tables.append(ors)
        print("\nOdds ratios:")
        print(ors[['term', 'or_median', 'or_lower', 'or_upper']].round(3).to_string(index=False))

        waic_results[spec.name] = model.waic()

        metrics = compute_fit_metrics(
            model.data_['y'], model.data_['trials'], model.fitted_probabilities()
        )
        fit_metrics[spec.name] = metrics
        print_metrics(metrics, title=f"Fit metrics ({spec.name})")

        model.spatial_effects(interval).to_csv(
            ensure_parent(tables_dir / f"spatial_effects_{spec.name}.csv"), index=False
        )
        model.save(models_dir / f"{spec.name}.pkl")
        print(f"  → Saved {models_dir / f'{spec.name}.pkl'}")

    if not or_tables:
        print("\nNo model fitted successfully.")
        sys.exit(1)

    # Results
    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    pd.concat(or_tables, ignore_index=True).to_csv(
        ensure_parent(tables_dir / "odds_ratios.csv"), index=False
    )

    waic_table = compare_waic(waic_results)
    waic_table.to_csv(tables_dir / "waic.csv")
    print_waic_table(waic_table)
    if (waic_table['n_high_p_waic'] > 0).any():
        print("⚠️  Some cells have p_waic > 0.4; WAIC may be unreliable")

    pd.DataFrame.from_dict(fit_metrics, orient='index').rename_axis('model').to_csv(
        tables_dir / "fit_metrics.csv"
    )

    with open(ensure_parent(models_dir / "diagnostics.json"), 'w') as f:
        json.dump(diagnostics, f, indent=2, default=lambda o: float(o) if isinstance(o, np.generic) else str(o))

    print(f"\n✓ Results written to {tables_dir} and {models_dir}")


if __name__ == "__main__":
    main()
