"""
Variable recoding for the CA-MRSA poverty study - STAGE 2

Turns raw visit and area columns into model-ready covariates:
- area poverty categories (exposure), with the lowest category as reference
- individual age group, sex, race/ethnicity and payer categories
- z-scored continuous area covariates
- design matrices (reference-coded dummies) for the Stan models
- optional collapse of Bernoulli rows to binomial cells
"""
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Sequence, Tuple
from sklearn.preprocessing import StandardScaler


DEFAULT_POVERTY_CUTPOINTS = [0, 10, 20, 30, 100]
DEFAULT_POVERTY_LABELS = ["<10%", "10-19.9%", "20-29.9%", ">=30%"]


def categorize_poverty(
    pct: pd.Series,
    cutpoints: Sequence[float] = DEFAULT_POVERTY_CUTPOINTS,
    labels: Sequence[str] = DEFAULT_POVERTY_LABELS
) -> pd.Series:
    """
    Categorize area poverty percentage.

    Bins are left-closed ([0, 10), [10, 20), ...) with the last bin closed
    on both sides so that 100% is included.

    Args:
        pct: Percent of residents below the federal poverty line (0-100)
        cutpoints: Bin edges
        labels: Bin labels (len(cutpoints) - 1); the first is the reference

    Returns:
        Ordered categorical series
    """
    if len(labels) != len(cutpoints) - 1:
        raise ValueError("labels must have one fewer entry than cutpoints")

    values = pd.to_numeric(pct, errors='coerce')
    out_of_range = values.notna() & ((values < 0) | (values > 100))
    if out_of_range.any():
        raise ValueError(
            f"Poverty percentage outside [0, 100] for {int(out_of_range.sum())} rows"
        )

    edges = list(cutpoints)
    edges[-1] = np.nextafter(edges[-1], np.inf)
    return pd.cut(values, bins=edges, labels=list(labels), right=False, ordered=True)


def categorize_age(
    age: pd.Series,
    bins: Sequence[float],
    labels: Sequence[str],
    reference: Optional[str] = None
) -> pd.Series:
    """Bin age in years into left-closed groups, reference level first."""
    values = pd.to_numeric(age, errors='coerce')
    cat = pd.cut(values, bins=list(bins), labels=list(labels), right=False)
    return _with_reference(cat, reference)


def collapse_categories(
    series: pd.Series,
    mapping: Dict[str, str],
    other: Optional[str] = "Other",
    reference: Optional[str] = None
) -> pd.Series:
    """
    Collapse raw category values using `mapping`.

    Values not in the mapping become `other` (or NaN if other is None).
    """
    raw = series.astype('string').str.strip()
    mapped = raw.map(mapping)
    if other is not None:
        mapped = mapped.where(mapped.notna() | raw.isna(), other)
    cat = pd.Categorical(mapped)
    return _with_reference(pd.Series(cat, index=series.index), reference)


def _with_reference(cat: pd.Series, reference: Optional[str]) -> pd.Series:
    """Reorder categories so that `reference` comes first."""
    cat = cat.astype('category')
    if reference is None:
        return cat
    cats = list(cat.cat.categories)
    if reference not in cats:
        raise ValueError(f"Reference level {reference!r} not in categories {cats}")
    return cat.cat.reorder_categories([reference] + [c for c in cats if c != reference])


def standardize(df: pd.DataFrame, cols: List[str]) -> Tuple[pd.DataFrame, StandardScaler]:
    """
    Z-score continuous columns in place of the originals.

    The raw values are kept in `<col>_raw`.

    Returns:
        (DataFrame copy, fitted StandardScaler)
    """
    df = df.copy()
    scaler = StandardScaler()
    values = df[cols].to_numpy(dtype=float)
    scaled = scaler.fit_transform(values)
    for i, col in enumerate(cols):
        df[f"{col}_raw"] = df[col]
        df[col] = scaled[:, i]
    return df, scaler


def recode_dataset(df: pd.DataFrame, recode_cfg: Dict) -> pd.DataFrame:
    """
    Apply every configured recode to the analysis dataset.

    Args:
        df: Output of build_analysis_dataset()
        recode_cfg: The `recode` block of the config

    Returns:
        Recoded DataFrame with `poverty_cat`, `poverty_per10`, `age_group`,
        `sex`, `race_eth`, `payer` and standardized area covariates
    """
    df = df.copy()

    pov_cfg = recode_cfg.get('poverty', {})
    df['poverty_cat'] = categorize_poverty(
        df['pct_poverty'],
        cutpoints=pov_cfg.get('cutpoints', DEFAULT_POVERTY_CUTPOINTS),
        labels=pov_cfg.get('labels', DEFAULT_POVERTY_LABELS),
    )
    df['poverty_per10'] = df['pct_poverty'] / 10.0

    if 'age' in df.columns and 'age' in recode_cfg:
        age_cfg = recode_cfg['age']
        df['age_group'] = categorize_age(
            df['age'], age_cfg['bins'], age_cfg['labels'], age_cfg.get('reference')
        )

    for col in ('sex', 'race_eth', 'payer'):
        if col in df.columns and col in recode_cfg:
            col_cfg = recode_cfg[col]
            df[col] = collapse_categories(
                df[col],
                col_cfg['mapping'],
                other=col_cfg.get('other', 'Other') if col != 'sex' else None,
                reference=col_cfg.get('reference'),
            )

    to_scale = [c for c in recode_cfg.get('standardize', []) if c in df.columns]
    if to_scale:
        df, _ = standardize(df, to_scale)

    return df


def build_design_matrix(
    df: pd.DataFrame,
    covariates: List[str]
) -> Tuple[np.ndarray, List[str]]:
    """
    Build a reference-coded design matrix (no intercept column).

    Categorical covariates become one dummy per non-reference level present
    in `df`, named `var[level]`; numeric covariates pass through unchanged.
    Levels without rows get no column; the reference level must have rows.

    Args:
        df: Recoded dataset
        covariates: Covariate column names, in model order

    Returns:
        (X array of shape (n, k), column names)
    """
    missing = [c for c in covariates if c not in df.columns]
    if missing:
        raise KeyError(f"Covariates not in data: {missing}")

    with_na = [c for c in covariates if df[c].isna().any()]
    if with_na:
        raise ValueError(f"Missing values in covariates: {with_na}")

    blocks = []
    names: List[str] = []
    for col in covariates:
        series = df[col]
        if isinstance(series.dtype, pd.CategoricalDtype) or not pd.api.types.is_numeric_dtype(series):
            cat = series.astype('category')
            reference = cat.cat.categories[0]
            present = set(cat.unique())
            if reference not in present:
                raise ValueError(f"Reference level {reference!r} of '{col}' has no rows")
            for level in cat.cat.categories[1:]:
                if level not in present:
                    continue
                blocks.append((cat == level).to_numpy(dtype=float))
                names.append(f"{col}[{level}]")
        else:
            blocks.append(series.to_numpy(dtype=float))
            names.append(col)

    if not blocks:
        return np.zeros((len(df), 0)), []
    return np.column_stack(blocks), names


def collapse_to_binomial(
    df: pd.DataFrame,
    covariates: List[str],
    area_col: str = 'mssa_id',
    outcome: str = 'case'
) -> pd.DataFrame:
    """
    Collapse Bernoulli rows to binomial cells.

    Rows sharing the same area and covariate pattern are summed; the
    binomial likelihood of the cells equals the Bernoulli likelihood of the
    rows up to a constant, so posteriors are unchanged.

    Returns:
        DataFrame with `area_col`, the covariates, `cases` and `trials`
    """
    keys = [area_col] + [c for c in covariates if c != area_col]
    with_na = [c for c in keys if df[c].isna().any()]
    if with_na:
        raise ValueError(f"Missing values in covariates: {with_na}")

    cells = (
        df.groupby(keys, observed=True, sort=True)[outcome]
        .agg(cases='sum', trials='size')
        .reset_index()
    )
    # groupby drops unused category levels from the values but keeps the dtype
    for col in covariates:
        if isinstance(df[col].dtype, pd.CategoricalDtype):
            cells[col] = cells[col].astype(df[col].dtype)
    cells['cases'] = cells['cases'].astype(int)
    cells['trials'] = cells['trials'].astype(int)
    return cells
