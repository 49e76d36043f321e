#!/usr/bin/env python3
"""Filter the raw ED-visit extract down to the study population.

The HCAI extract delivered for this study covers more years than the
analysis uses and includes visits by non-California residents (no MSSA).
This script keeps only rows in the requested years with a non-missing
`mssa_id`, writes a timestamped backup of the original file, then
overwrites the original path.

Usage:
  python scripts/filter_visits_to_study.py \
    --input data/raw/ed_visits.csv --years 2016 2017 2018 2019
"""

from __future__ import annotations

import argparse
import shutil
from datetime import datetime
from pathlib import Path

import pandas as pd


def main() -> None:
    parser = argparse.ArgumentParser(description="Filter ED visits to the study population")
    parser.add_argument(
        "--input",
        type=str,
        default="data/raw/ed_visits.csv",
        help="Path to the raw visit extract",
    )
    parser.add_argument(
        "--years",
        type=int,
        nargs="+",
        required=True,
        help="Study years to keep",
    )
    args = parser.parse_args()

    src = Path(args.input)
    if not src.exists():
        raise SystemExit(f"Input file not found: {src}")

    df = pd.read_csv(src, low_memory=False)
    for col in ("mssa_id", "year"):
        if col not in df.columns:
            raise SystemExit(f"Column '{col}' not found in input CSV")

    year = pd.to_numeric(df["year"], errors="coerce")
    mssa = df["mssa_id"].astype("string").str.strip()
    mask = year.isin(args.years) & mssa.notna() & (mssa != "")

    filtered = df.loc[mask].copy()

    if len(filtered) == 0:
        raise SystemExit(f"Filter produced 0 rows (years: {args.years}). Aborting.")

    # Backup original
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup = src.with_suffix(f".csv.bak_{stamp}")
    shutil.copy2(src, backup)

    # Overwrite original
    filtered.to_csv(src, index=False)

    # Report
    print("Visit extract cleanup complete")
    print(f"  Input path:   {src}")
    print(f"  Backup path:  {backup}")
    print(f"  Years:        {sorted(args.years)}")
    print(f"  Rows kept:    {len(filtered)} / {len(df)}")
    print(f"  No MSSA:      {int((mssa.isna() | (mssa == '')).sum())}")


if __name__ == "__main__":
    main()
