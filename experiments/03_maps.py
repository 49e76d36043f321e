#!/usr/bin/env python3
"""
Experiment 03: Spatial Maps

Choropleths of MSSA poverty category and CA-MRSA case rate, plus a map of
facility locations.

Outputs: results/figures/map_*.png

Usage:
    python experiments/03_maps.py
"""
import sys
import argparse
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path, require
from camrsa.data.loader import load_mssa_shapes, load_facilities
from camrsa.features.recode import categorize_poverty
from camrsa.descriptive.tables import case_rates_by_area
from camrsa.mapping.maps import plot_choropleth, plot_facilities


def main():
    parser = argparse.ArgumentParser(description="Spatial maps")
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
    pov_cfg = require(cfg, 'recode', 'poverty')
    out_cfg = cfg.get('output', {})
    fig_dir = get_data_path(out_cfg.get('figures', 'results/figures'))
    dpi = out_cfg.get('dpi', 150)

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - MAPS")
    print("=" * 60)

    shapes = load_mssa_shapes(get_data_path(raw['shapes']), crs=cfg['data'].get('crs'))
    df = pd.read_parquet(get_data_path(processed['analysis']))
    areas = pd.read_parquet(get_data_path(processed['areas']))

    areas['poverty_cat'] = categorize_poverty(
        areas['pct_poverty'], pov_cfg['cutpoints'], pov_cfg['labels']
    )
    rates = case_rates_by_area(df, areas)
    gdf = shapes.merge(areas[['mssa_id', 'poverty_cat']], on='mssa_id', how='left')
    gdf = gdf.merge(rates[['mssa_id', 'rate_per_100k']], on='mssa_id', how='left')

    plot_choropleth(gdf, 'poverty_cat', "Area poverty by MSSA",
                    fig_dir / "map_poverty.png", categorical=True, cmap='Purples', dpi=dpi)
    plot_choropleth(gdf, 'rate_per_100k', "CA-MRSA SSTI visits per 100,000 residents",
                    fig_dir / "map_case_rate.png", n_classes=5, dpi=dpi)

    if raw.get('facilities'):
        facilities = load_facilities(get_data_path(raw['facilities']))
        plot_facilities(shapes, facilities, fig_dir / "map_facilities.png", dpi=dpi)

    print("\n✓ Maps complete!")


if __name__ == "__main__":
    main()
