"""
Descriptive statistics for the CA-MRSA poverty study

- Table 1: visit characteristics by case status with chi-square tests
  (categorical) and Welch t-tests (continuous)
- Area-level summary of MSSA covariates by poverty category
- Cases and case rates per MSSA
"""
import numpy as np
import pandas as pd
from typing import List, Optional
from scipy.stats import chi2_contingency, ttest_ind


def categorical_table(df: pd.DataFrame, var: str, by: str = 'case') -> pd.DataFrame:
    """
    Counts and column percentages of `var` by `by`, with a chi-square test.

    Args:
        df: Analysis dataset
        var: Categorical variable
        by: Grouping column (case status)

    Returns:
        One row per level of `var` with n_<group>, pct_<group> columns and
        chi2, dof, p_value repeated on each row (NaN if the test is undefined)
    """
    counts = pd.crosstab(df[var], df[by], dropna=True)
    pct = counts.div(counts.sum(axis=0), axis=1) * 100

    if counts.shape[0] >= 2 and counts.shape[1] >= 2:
        chi2, p_value, dof, _ = chi2_contingency(counts.to_numpy())
    else:
        chi2, p_value, dof = np.nan, np.nan, np.nan

    out = pd.DataFrame({'variable': var, 'level': counts.index.astype(str)})
    for group in counts.columns:
        out[f"n_{group}"] = counts[group].to_numpy()
        out[f"pct_{group}"] = pct[group].round(1).to_numpy()
    out['chi2'] = chi2
    out['dof'] = dof
    out['p_value'] = p_value
    return out.reset_index(drop=True)


def continuous_table(df: pd.DataFrame, var: str, by: str = 'case') -> pd.DataFrame:
    """Mean (SD) and median of `var` by `by`, with a Welch t-test."""
    groups = {g: pd.to_numeric(s, errors='coerce').dropna() for g, s in df.groupby(by, observed=True)[var]}

    row = {'variable': var, 'level': 'mean (SD)'}
    for g, values in groups.items():
        row[f"mean_{g}"] = values.mean()
        row[f"sd_{g}"] = values.std()
        row[f"median_{g}"] = values.median()

    samples = list(groups.values())
    if len(samples) == 2 and all(len(s) >= 2 for s in samples):
        stat, p_value = ttest_ind(samples[0], samples[1], equal_var=False)
    else:
        stat, p_value = np.nan, np.nan
    row['t_stat'] = stat
    row['p_value'] = p_value
    return pd.DataFrame([row])


def table_one(
    df: pd.DataFrame,
    categorical: List[str],
    continuous: Optional[List[str]] = None,
    by: str = 'case'
) -> pd.DataFrame:
    """
    Stack categorical and continuous summaries into a single Table 1.

    Columns not present in `df` are skipped with a warning.
    """
    parts = []
    for var in categorical:
        if var not in df.columns:
            print(f"  ⚠️  Table 1: column '{var}' not found, skipped")
            continue
        parts.append(categorical_table(df, var, by))
    for var in continuous or []:
        if var not in df.columns:
            print(f"  ⚠️  Table 1: column '{var}' not found, skipped")
            continue
        parts.append(continuous_table(df, var, by))

    if not parts:
        return pd.DataFrame()
    return pd.concat(parts, ignore_index=True, sort=False)


def area_summary(areas: pd.DataFrame, cols: List[str], by: str = 'poverty_cat') -> pd.DataFrame:
    """
    Median of area covariates by poverty category.

    Args:
        areas: One row per MSSA (recoded so that `by` exists)
        cols: Covariates to summarize
        by: Grouping column

    Returns:
        DataFrame indexed by `by` with n_mssa and one median column per covariate
    """
    present = [c for c in cols if c in areas.columns]
    grouped = areas.groupby(by, observed=False)
    out = grouped[present].median()
    out.insert(0, 'n_mssa', grouped.size())
    return out


def case_rates_by_area(
    df: pd.DataFrame,
    areas: pd.DataFrame,
    area_col: str = 'mssa_id',
    outcome: str = 'case'
) -> pd.DataFrame:
    """
    Cases and visits per MSSA with cases per 100k population.

    MSSAs with no visits are included with zero counts.
    """
    counts = df.groupby(area_col)[outcome].agg(cases='sum', visits='size')
    out = areas[[area_col, 'population']].merge(
        counts.reset_index(), on=area_col, how='left'
    )
    out[['cases', 'visits']] = out[['cases', 'visits']].fillna(0).astype(int)

    pop = out['population'].replace(0, np.nan)
    out['rate_per_100k'] = (out['cases'] / pop * 100000).round(2)
    out['case_proportion'] = (out['cases'] / out['visits'].replace(0, np.nan)).round(4)
    return out


def print_table_one(table: pd.DataFrame) -> None:
    """Print Table 1 p-values per variable."""
    print("\nTable 1 tests")
    print("-" * 40)
    for var, rows in table.groupby('variable', sort=False):
        p = rows['p_value'].iloc[0]
        flag = " *" if pd.notna(p) and p < 0.05 else ""
        print(f"  {var:<20} p = {p:.4g}{flag}")
