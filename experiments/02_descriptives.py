#!/usr/bin/env python3
"""
Experiment 02: Descriptive Statistics

Produces:
- Table 1: visit characteristics by case status (chi-square / Welch t-tests)
- Area-level summary of MSSA covariates by poverty category
- Cases and case rates per MSSA

Outputs: results/tables/table1.csv, area_summary.csv, case_rates_by_mssa.csv

Usage:
    python experiments/02_descriptives.py
"""
import sys
import argparse
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.common.paths import ensure_parent
from camrsa.features.recode import recode_dataset
from camrsa.descriptive.tables import (
    table_one,
    area_summary,
    case_rates_by_area,
    print_table_one,
)


CATEGORICAL = ['poverty_cat', 'age_group', 'sex', 'race_eth', 'payer']
CONTINUOUS = ['age']
AREA_COLUMNS = [
    'population', 'pct_poverty', 'pct_crowded', 'pct_uninsured', 'pct_rural',
    'pcp_per_100k', 'mean_temp_c', 'mean_humidity', 'pollution_burden', 'n_correctional',
]


def main():
    parser = argparse.ArgumentParser(description="Descriptive statistics")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    processed = require(cfg, 'data', 'processed')
    recode_cfg = require(cfg, 'recode')
    tables_dir = get_data_path(cfg.get('output', {}).get('tables', 'results/tables'))

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - DESCRIPTIVE STATISTICS")
    print("=" * 60)

    df = pd.read_parquet(get_data_path(processed['analysis']))
    areas = pd.read_parquet(get_data_path(processed['areas']))
    print(f"  → {len(df)} visits, {len(areas)} MSSAs")

    # Descriptives use raw (unstandardized) area covariates
    desc_cfg = {**recode_cfg, 'standardize': []}
    df = recode_dataset(df, desc_cfg)
    areas = recode_dataset(areas, desc_cfg)

    print("\nBuilding Table 1...")
    table1 = table_one(df, CATEGORICAL, CONTINUOUS, by='case')
    table1.to_csv(ensure_parent(tables_dir / "table1.csv"), index=False)
    print_table_one(table1)

    print("\nArea-level summary by poverty category...")
    summary = area_summary(areas, AREA_COLUMNS, by='poverty_cat')
    summary.to_csv(tables_dir / "area_summary.csv")
    print(summary.round(2).to_string())

    print("\nCase rates per MSSA...")
    rates = case_rates_by_area(df, areas)
    rates.to_csv(tables_dir / "case_rates_by_mssa.csv", index=False)
    print(f"  → {int((rates['cases'] > 0).sum())}/{len(rates)} MSSAs with at least one case")
    print(f"  → Median rate: {rates['rate_per_100k'].median():.2f} per 100k")

    print(f"\n✓ Tables written to {tables_dir}")


if __name__ == "__main__":
    main()
