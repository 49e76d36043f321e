#!/usr/bin/env python3
"""
Experiment 01: Build Analysis Dataset

This script builds the canonical analysis dataset from raw sources:
- ED-visit extract (individual records, diagnosis codes)
- MSSA census, environmental and facility-location tables
- MSSA boundaries (for the facility spatial join)

Output: data/processed/analysis_dataset.parquet, data/processed/mssa_areas.parquet

Usage:
    python experiments/01_build_dataset.py
    python experiments/01_build_dataset.py --config config/config_default.yaml
"""
import sys
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.data.loader import load_visits, load_mssa_shapes, build_analysis_dataset
from camrsa.labels.case_labels import case_labels_from_config


def main():
    parser = argparse.ArgumentParser(description="Build analysis dataset")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()

    cfg = load_config(str(get_project_root() / args.config))
    raw = require(cfg, 'data', 'raw')
    processed = require(cfg, 'data', 'processed')

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - BUILD ANALYSIS DATASET")
    print("=" * 60)

    print("Loading ED visits...")
    visits = load_visits(get_data_path(raw['visits']))
    print(f"  → {len(visits)} visits loaded")

    years = cfg.get('study', {}).get('years')
    if years:
        visits = visits[visits['year'].isin(years)].reset_index(drop=True)
        print(f"  → {len(visits)} visits in study years {min(years)}-{max(years)}")

    visits = case_labels_from_config(visits, cfg)

    print("Loading MSSA boundaries...")
    shapes = load_mssa_shapes(get_data_path(raw['shapes']), crs=cfg['data'].get('crs'))
    print(f"  → {len(shapes)} MSSA polygons")

    dataset = build_analysis_dataset(
        visits,
        census_path=get_data_path(raw['census']),
        environment_path=get_data_path(raw['environment']) if raw.get('environment') else None,
        facilities_path=get_data_path(raw['facilities']) if raw.get('facilities') else None,
        shapes=shapes,
        facility_types=cfg.get('facilities', {}).get('types'),
        output_path=get_data_path(processed['analysis']),
        areas_output_path=get_data_path(processed['areas']),
    )

    # Summary statistics
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Total visits: {len(dataset)}")
    print(f"Cases: {int(dataset['case'].sum())}")
    print(f"Unique MSSAs: {dataset['mssa_id'].nunique()}")
    print(f"Year range: {dataset['year'].min()} - {dataset['year'].max()}")

    # Missing data report
    print("\nMissing data:")
    for col in dataset.columns:
        missing = dataset[col].isna().sum()
        if missing > 0:
            pct = 100 * missing / len(dataset)
            print(f"  {col}: {missing} ({pct:.1f}%)")

    print("\n✓ Dataset build complete!")
    return dataset


if __name__ == "__main__":
    main()
