#!/usr/bin/env python3
"""
Experiment 05: Mediation by the Difference Method

Compares the poverty coefficients of the confounder-adjusted model
(`models.base_model`) with those of each model that adds candidate
mediators, using the pickled fits from Experiment 04.

Output: results/tables/mediation.csv

Usage:
    python experiments/05_mediation.py
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.common.paths import ensure_parent
from camrsa.features.feature_sets import model_specs_from_config
from camrsa.models.base import BaseModel
from camrsa.analysis.mediation import run_mediation, mediator_models_from_specs


def main():
    parser = argparse.ArgumentParser(description="Difference-method mediation")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    models_cfg = require(cfg, 'models')
    base_model = require(cfg, 'models', 'base_model')
    terms = require(cfg, 'models', 'exposure_terms')
    out_cfg = cfg.get('output', {})
    tables_dir = get_data_path(out_cfg.get('tables', 'results/tables'))
    models_dir = get_data_path(out_cfg.get('models', 'results/models'))

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - MEDIATION (DIFFERENCE METHOD)")
    print("=" * 60)

    specs = model_specs_from_config(models_cfg)
    mediator_models = mediator_models_from_specs(specs, base_model)
    print(f"Base model: {base_model}")
    print(f"Mediator models: {mediator_models}")

    draws = {}
    for name in [base_model] + mediator_models:
        path = models_dir / f"{name}.pkl"
        if not path.exists():
            print(f"  ⚠️  {path} not found (run experiments/04_fit_models.py)")
            continue
        draws[name] = BaseModel.load(path).get_coefficient_draws()

    table = run_mediation(
        draws, base_model, mediator_models, terms,
        interval=models_cfg.get('interval', 0.95)
    )

    if table.empty:
        print("\nNo mediator model available.")
        sys.exit(1)

    table.to_csv(ensure_parent(tables_dir / "mediation.csv"), index=False)

    print("\nPercent of poverty effect explained:")
    print("-" * 60)
    for _, row in table.iterrows():
        print(f"  {row['mediator_model']:<18} {row['term']:<24} "
              f"{row['pct_explained']:>6.1f}% [{row['pct_lower']:.1f}, {row['pct_upper']:.1f}]")

    print(f"\n✓ Mediation table written to {tables_dir / 'mediation.csv'}")


if __name__ == "__main__":
    main()
