"""
Case Definition for the CA-MRSA poverty study

Creates the binary `case` flag from ICD-10-CM diagnosis codes on each
ED visit.

Definition:
    case = 1 if any diagnosis is a skin/soft-tissue infection (SSTI)
           AND any diagnosis is an MRSA organism/resistance code
    case = 0 otherwise

Controls are config-driven:
    "all"  - every non-case visit is a control
    "ssti" - only SSTI visits without an MRSA code are controls
             (non-SSTI visits are dropped)
"""
import pandas as pd
from typing import List, Optional, Sequence

from camrsa.data.loader import get_dx_columns


CONTROL_DEFINITIONS = ("all", "ssti")


def _clean_codes(values: pd.Series) -> pd.Series:
    return values.astype('string').str.upper().str.replace('.', '', regex=False).str.strip()


def flag_ssti(df: pd.DataFrame, dx_cols: List[str], prefixes: Sequence[str]) -> pd.Series:
    """
    Flag visits with any SSTI diagnosis.

    Args:
        df: Visit records
        dx_cols: Diagnosis columns to scan
        prefixes: ICD-10 category prefixes (e.g. "L02", "L03")

    Returns:
        Boolean series aligned to df
    """
    prefixes = tuple(p.upper().replace('.', '') for p in prefixes)
    flag = pd.Series(False, index=df.index)
    for col in dx_cols:
        codes = _clean_codes(df[col])
        flag |= codes.str.startswith(prefixes).fillna(False).astype(bool)
    return flag


def flag_mrsa(df: pd.DataFrame, dx_cols: List[str], codes: Sequence[str]) -> pd.Series:
    """Flag visits carrying an MRSA code (exact match, dots ignored)."""
    targets = {c.upper().replace('.', '') for c in codes}
    flag = pd.Series(False, index=df.index)
    for col in dx_cols:
        flag |= _clean_codes(df[col]).isin(targets).fillna(False).astype(bool)
    return flag


def create_case_labels(
    df: pd.DataFrame,
    ssti_prefixes: Sequence[str],
    mrsa_codes: Sequence[str],
    controls: str = "all",
    dx_prefix: str = "dx"
) -> pd.DataFrame:
    """
    Add the `case` column to visit records.

    If the extract has no diagnosis columns but already carries a `case`
    column, that column is validated (0/1 only) and kept.

    Args:
        df: Visit records from load_visits()
        ssti_prefixes: SSTI ICD-10 prefixes
        mrsa_codes: MRSA ICD-10 codes
        controls: Control definition ("all" or "ssti")
        dx_prefix: Prefix of the diagnosis columns

    Returns:
        DataFrame with an integer `case` column (and `ssti`, `mrsa` flags
        when diagnosis columns are present)
    """
    if controls not in CONTROL_DEFINITIONS:
        raise ValueError(f"Unknown control definition: {controls}")

    df = df.copy()
    dx_cols = get_dx_columns(df, prefix=dx_prefix)

    if not dx_cols:
        if 'case' not in df.columns:
            raise KeyError("Visit extract has neither diagnosis columns nor a 'case' column")
        case = pd.to_numeric(df['case'], errors='coerce')
        if case.isna().any() or not case.isin([0, 1]).all():
            raise ValueError("Precomputed 'case' column must contain only 0/1")
        df['case'] = case.astype(int)
        print("Using precomputed case flag")
    else:
        print(f"Computing case labels from {len(dx_cols)} diagnosis columns...")
        df['ssti'] = flag_ssti(df, dx_cols, ssti_prefixes).astype(int)
        df['mrsa'] = flag_mrsa(df, dx_cols, mrsa_codes).astype(int)
        df['case'] = (df['ssti'] & df['mrsa']).astype(int)

        if controls == "ssti":
            n_before = len(df)
            df = df[df['ssti'] == 1].reset_index(drop=True)
            print(f"  → restricted controls to SSTI visits ({n_before - len(df)} dropped)")

    n_cases = int(df['case'].sum())
    n = len(df)
    print(f"  ✓ {n} visits ({n_cases} cases, {n - n_cases} controls)")
    if n:
        print(f"  ✓ Case proportion: {100 * n_cases / n:.2f}%")

    return df


def case_labels_from_config(df: pd.DataFrame, cfg: dict) -> pd.DataFrame:
    """Apply create_case_labels() with the `case_definition` config block."""
    case_cfg: Optional[dict] = cfg.get('case_definition')
    if case_cfg is None:
        raise ValueError("Missing case_definition in config.")
    return create_case_labels(
        df,
        ssti_prefixes=case_cfg.get('ssti_prefixes', ["L02", "L03", "L08"]),
        mrsa_codes=case_cfg.get('mrsa_codes', ["A49.02", "B95.62"]),
        controls=case_cfg.get('controls', 'all'),
        dx_prefix=case_cfg.get('dx_prefix', 'dx'),
    )
