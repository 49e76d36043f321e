#!/usr/bin/env python3
"""
Experiment 00: Setup Check

Before running the pipeline, verify that:
1. the config parses and names a valid model sequence
2. every raw input listed under data.raw is in place
3. the scientific stack imports and CmdStan is installed
4. both Stan programs are present

Usage:
    python experiments/00_sanity_check.py
    python experiments/00_sanity_check.py --config config/my_config.yaml
"""
import sys
import argparse
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from camrsa.config import load_config, get_project_root, get_data_path


STAN_PROGRAMS = ("bym2_logistic.stan", "logistic_fixed.stan")


def check_config(cfg_path: str) -> bool:
    print("Config and model sequence...", end=" ")
    try:
        from camrsa.features.feature_sets import model_specs_from_config
        cfg = load_config(cfg_path)
        specs = model_specs_from_config(cfg['models'])
        base = cfg['models'].get('base_model')
        if base not in {s.name for s in specs}:
            raise ValueError(f"base_model '{base}' not in sequence")
        print(f"✓ ({len(specs)} models)")
        return True
    except (FileNotFoundError, KeyError, ValueError) as e:
        print(f"✗ ({e})")
        return False


def check_inputs(cfg_path: str) -> bool:
    print("Raw inputs...", end=" ")
    try:
        raw = load_config(cfg_path)['data']['raw']
    except (FileNotFoundError, KeyError) as e:
        print(f"✗ ({e})")
        return False

    missing = [key for key, rel in raw.items() if not get_data_path(rel).exists()]
    if missing:
        print(f"✗ (not found: {missing})")
        return False
    print(f"✓ ({len(raw)} files)")
    return True


def check_stack() -> bool:
    print("Libraries and CmdStan...", end=" ")
    try:
        import geopandas  # noqa: F401
        import libpysal  # noqa: F401
        import scipy  # noqa: F401
        import sklearn  # noqa: F401
        import cmdstanpy
        cmdstan = cmdstanpy.cmdstan_path()
    except ImportError as e:
        print(f"✗ (import failed: {e})")
        return False
    except ValueError as e:
        print(f"✗ (CmdStan not installed: {e})")
        return False
    print(f"✓ (CmdStan at {cmdstan})")
    return True


def check_stan_programs() -> bool:
    print("Stan programs...", end=" ")
    stan_dir = get_project_root() / "stan_models"
    missing = [p for p in STAN_PROGRAMS if not (stan_dir / p).exists()]
    if missing:
        print(f"✗ (missing: {missing})")
        return False
    print("✓")
    return True


def main():
    parser = argparse.ArgumentParser(description="Check project setup")
    parser.add_argument(
        "--config",
        type=str,
        default="config/config_default.yaml",
        help="Path to config file"
    )
    args = parser.parse_args()
    cfg_path = str(get_project_root() / args.config)

    print("=" * 60)
    print("CA-MRSA POVERTY STUDY - SETUP CHECK")
    print("=" * 60)

    results = [
        check_config(cfg_path),
        check_inputs(cfg_path),
        check_stack(),
        check_stan_programs(),
    ]

    print("\n" + "=" * 60)
    n_ok = sum(results)
    if n_ok < len(results):
        print(f"{len(results) - n_ok} of {len(results)} checks failed ✗")
        sys.exit(1)
    print(f"All {n_ok} checks passed ✓ (next: experiments/01_build_dataset.py)")


if __name__ == "__main__":
    main()
