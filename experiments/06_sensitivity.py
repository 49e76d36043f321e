#!/usr/bin/env python3
"""
Experiment 06: Sensitivity Analyses

Re-fits the sensitivity model (`sensitivity.model`, the full model by
default) under each configured scenario:
  - nonspatial: no BYM2 random effect (WAIC compared with the main fit)
  - continuous_poverty: poverty per 10 percentage points
  - adults_only / no_correctional_mssa: data subsets

Outputs: results/tables/sensitivity_odds_ratios.csv, sensitivity_waic.csv

Usage:
    python experiments/06_sensitivity.py
    python experiments/06_sensitivity.py --scenarios nonspatial adults_only
"""
import sys
import argparse
import traceback
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.common.paths import ensure_parent
from camrsa.data.loader import load_mssa_shapes
from camrsa.features.recode import recode_dataset
from camrsa.features.feature_sets import model_specs_from_config, all_covariates
from camrsa.spatial.adjacency import build_adjacency, compute_scaling_factor
from camrsa.models.base import BaseModel
from camrsa.models.bayesian.bym2_logistic import BYM2Logistic, FixedEffectsLogistic
from camrsa.analysis.sensitivity import (
    scenarios_from_config,
    apply_scenario,
    scenario_covariates,
    scenario_exposure_terms,
)
from camrsa.evaluation.waic import compare_waic, print_waic_table


def main():
    parser = argparse.ArgumentParser(description="Sensitivity analyses")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    parser.add_argument("--scenarios", nargs="*", default=None, help="Subset of scenarios")
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    raw = require(cfg, 'data', 'raw')
    processed = require(cfg, 'data', 'processed')
    models_cfg = require(cfg, 'models')
    sens_cfg = require(cfg, 'sensitivity')
    out_cfg = cfg.get('output', {})
    tables_dir = get_data_path(out_cfg.get('tables', 'results/tables'))
    models_dir = get_data_path(out_cfg.get('models', 'results/models'))
    interval = models_cfg.get('interval', 0.95)
    category_terms = require(cfg, 'models', 'exposure_terms')

    specs = {s.name: s for s in model_specs_from_config(models_cfg)}
    scenarios = scenarios_from_config(sens_cfg)
    if args.scenarios:
        scenarios = [s for s in scenarios if s.name in args.scenarios]

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - SENSITIVITY ANALYSES")
    print("=" * 60)
    for s in scenarios:
        print(f"  {s.name}: {s.description}")

    df = pd.read_parquet(get_data_path(processed['analysis']))
    df = recode_dataset(df, require(cfg, 'recode'))

    cell_covariates = all_covariates(specs.values())
    df = df.dropna(subset=cell_covariates + ['case']).reset_index(drop=True)

    shapes = load_mssa_shapes(get_data_path(raw['shapes']), crs=cfg['data'].get('crs'))
    graph = build_adjacency(shapes)
    scaling_factor = compute_scaling_factor(graph)

    or_tables = []
    waic_rows = {}

    for scenario in scenarios:
        if scenario.model not in specs:
            raise ValueError(f"Scenario {scenario.name}: unknown model '{scenario.model}'")
        spec = specs[scenario.model]

        print("\n" + "=" * 60)
        print(f"SCENARIO {scenario.name}")
        print("=" * 60)

        subset = apply_scenario(df, scenario)
        covariates = scenario_covariates(spec, scenario)
        cells = [c for c in cell_covariates if c not in scenario.drop_mediators]
        for c in covariates:
            if c not in cells:
                cells.append(c)
        print(f"  → {len(subset)} visits, {int(subset['case'].sum())} cases")
        print(f"  → covariates: {covariates}")

        name = f"{scenario.model}__{scenario.name}"
        if scenario.spatial:
            model = BYM2Logistic(name, graph, scaling_factor=scaling_factor, config=models_cfg)
        else:
            model = FixedEffectsLogistic(name, config=models_cfg)

        try:
            model.fit(subset, covariates, cell_covariates=cells)
        except Exception as e:
            print(f"\nERROR in scenario {scenario.name}: {e}")
            traceback.print_exc()
            continue

        model.print_diagnostics()
        ors = model.odds_ratios(interval)
        ors.insert(0, 'scenario', scenario.name)
        terms = scenario_exposure_terms(scenario, category_terms)
        print(ors[ors['term'].isin(terms)][['term', 'or_median', 'or_lower', 'or_upper']]
              .round(3).to_string(index=False))
        or_tables.append(ors)
        waic_rows[name] = model.waic()
        model.save(models_dir / f"{name}.pkl")

        # Same sample and cells as the main fit: WAIC is comparable
        main_path = models_dir / f"{scenario.model}.pkl"
        if not scenario.spatial and not scenario.query and main_path.exists():
            main_model = BaseModel.load(main_path)
            table = compare_waic({scenario.model: main_model.waic(), name: waic_rows[name]})
            print_waic_table(table, title="Spatial vs non-spatial")

    if not or_tables:
        print("\nNo scenario fitted successfully.")
        sys.exit(1)

    pd.concat(or_tables, ignore_index=True).to_csv(
        ensure_parent(tables_dir / "sensitivity_odds_ratios.csv"), index=False
    )
    # Scenarios on different subsets are not comparable by WAIC; kept for reference
    pd.DataFrame.from_dict(waic_rows, orient='index').rename_axis('model').to_csv(
        tables_dir / "sensitivity_waic.csv"
    )
    print(f"\n✓ Sensitivity results written to {tables_dir}")


if __name__ == "__main__":
    main()
