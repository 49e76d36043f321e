"""
Data Loader for the CA-MRSA poverty study - STAGE 1: Data Acquisition

This module handles:
1. Loading individual ED-visit records (OSHPD/HCAI emergency department extract)
2. Loading MSSA-level census, environmental and facility-location tables
3. Counting facilities per MSSA with a point-in-polygon spatial join
4. Joining everything into one analysis dataset keyed by `mssa_id`

Every area-level table is keyed by `mssa_id` and must hold one row per MSSA.
"""
import numpy as np
import pandas as pd
import geopandas as gpd
from pathlib import Path
from typing import Iterable, List, Optional

from camrsa.common.paths import ensure_parent


VISIT_COLUMNS = ['record_id', 'mssa_id', 'age', 'sex', 'race_eth', 'payer', 'year']
CENSUS_COLUMNS = ['mssa_id', 'population', 'pct_poverty']
FACILITY_COLUMNS = ['facility_id', 'facility_type', 'latitude', 'longitude']


def normalize_mssa_id(series: pd.Series) -> pd.Series:
    """
    Normalize MSSA identifiers to clean strings.

    MSSA ids look like "78.2ttt" or "104", and numeric-looking ones are often
    parsed as floats by CSV readers ("104.0").

    Args:
        series: Raw identifier column

    Returns:
        String series with surrounding whitespace and float artefacts removed
    """
    out = series.astype('string').str.strip()
    return out.str.replace(r'\.0$', '', regex=True)


def _check_columns(df: pd.DataFrame, required: Iterable[str], source: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise KeyError(f"{source} is missing required columns: {missing}")


def _check_unique_areas(df: pd.DataFrame, source: str) -> None:
    dupes = df['mssa_id'][df['mssa_id'].duplicated()].unique()
    if len(dupes) > 0:
        raise ValueError(
            f"{source} has duplicate mssa_id values: {list(dupes[:10])}"
        )


def load_visits(path: str) -> pd.DataFrame:
    """
    Load individual ED-visit records.

    Args:
        path: Path to the visit extract CSV

    Returns:
        DataFrame with one row per visit, `mssa_id` normalized
    """
    df = pd.read_csv(path, low_memory=False)
    _check_columns(df, VISIT_COLUMNS, "Visit extract")

    df['mssa_id'] = normalize_mssa_id(df['mssa_id'])
    df['age'] = pd.to_numeric(df['age'], errors='coerce')
    df['year'] = pd.to_numeric(df['year'], errors='coerce').astype('Int64')

    # Diagnosis codes: uppercase strings, NaN stays NaN
    for col in get_dx_columns(df):
        df[col] = df[col].astype('string').str.strip().str.upper()

    return df


def get_dx_columns(df: pd.DataFrame, prefix: str = 'dx') -> List[str]:
    """Diagnosis columns (dx1, dx2, ...) in numeric order."""
    cols = [c for c in df.columns if c.startswith(prefix) and c[len(prefix):].isdigit()]
    return sorted(cols, key=lambda c: int(c[len(prefix):]))


def load_census(path: str) -> pd.DataFrame:
    """
    Load MSSA-level census table.

    Args:
        path: Path to the MSSA census CSV

    Returns:
        DataFrame with `mssa_id`, `population`, `pct_poverty` and any
        additional area covariates present in the file
    """
    df = pd.read_csv(path)
    _check_columns(df, CENSUS_COLUMNS, "Census table")

    df['mssa_id'] = normalize_mssa_id(df['mssa_id'])
    _check_unique_areas(df, "Census table")

    df['population'] = pd.to_numeric(df['population'], errors='coerce')
    df['pct_poverty'] = pd.to_numeric(df['pct_poverty'], errors='coerce')
    return df


def load_environment(path: str) -> pd.DataFrame:
    """Load MSSA-level environmental covariates (climate, pollution burden)."""
    df = pd.read_csv(path)
    _check_columns(df, ['mssa_id'], "Environment table")

    df['mssa_id'] = normalize_mssa_id(df['mssa_id'])
    _check_unique_areas(df, "Environment table")
    return df


def load_facilities(path: str) -> pd.DataFrame:
    """
    Load facility locations (correctional facilities, nursing homes, ...).

    Rows without coordinates are dropped.
    """
    df = pd.read_csv(path)
    _check_columns(df, FACILITY_COLUMNS, "Facility table")

    df['facility_type'] = df['facility_type'].astype(str).str.strip().str.lower()
    df['latitude'] = pd.to_numeric(df['latitude'], errors='coerce')
    df['longitude'] = pd.to_numeric(df['longitude'], errors='coerce')

    n_before = len(df)
    df = df.dropna(subset=['latitude', 'longitude']).reset_index(drop=True)
    if len(df) < n_before:
        print(f"  → dropped {n_before - len(df)} facilities without coordinates")
    return df


def load_mssa_shapes(path: str, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Load MSSA boundary polygons.

    Args:
        path: Any vector file geopandas can read (shapefile, GeoPackage, GeoJSON)
        crs: If given, reproject to this CRS (a projected CRS for distances)

    Returns:
        GeoDataFrame with `mssa_id` and `geometry`, sorted by `mssa_id`
    """
    gdf = gpd.read_file(path)
    _check_columns(gdf, ['mssa_id'], "MSSA boundaries")

    gdf['mssa_id'] = normalize_mssa_id(gdf['mssa_id'])
    _check_unique_areas(gdf, "MSSA boundaries")

    if crs is not None:
        gdf = gdf.to_crs(crs)

    return gdf.sort_values('mssa_id').reset_index(drop=True)


def count_facilities_by_mssa(
    facilities: pd.DataFrame,
    shapes: gpd.GeoDataFrame,
    facility_types: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Count facilities falling inside each MSSA.

    Args:
        facilities: Output of load_facilities() (WGS84 lat/lon)
        shapes: MSSA polygons from load_mssa_shapes()
        facility_types: Types to report; defaults to all types present

    Returns:
        DataFrame with one row per MSSA: `mssa_id`, `n_<type>`, `any_<type>`
    """
    if facility_types is None:
        facility_types = sorted(facilities['facility_type'].unique())

    points = gpd.GeoDataFrame(
        facilities,
        geometry=gpd.points_from_xy(facilities['longitude'], facilities['latitude']),
        crs="EPSG:4326"
    ).to_crs(shapes.crs)

    joined = gpd.sjoin(
        points, shapes[['mssa_id', 'geometry']], how='inner', predicate='within'
    )

    n_outside = len(points) - joined['facility_id'].nunique()
    if n_outside > 0:
        print(f"  → {n_outside} facilities fall outside every MSSA")

    counts = (
        joined.groupby(['mssa_id', 'facility_type'])
        .size()
        .unstack(fill_value=0)
        .reindex(columns=facility_types, fill_value=0)
    )
    counts = counts.reindex(shapes['mssa_id'], fill_value=0)
    counts.columns = [f"n_{t}" for t in counts.columns]
    counts.index.name = 'mssa_id'

    out = counts.reset_index()
    for t in facility_types:
        out[f"any_{t}"] = (out[f"n_{t}"] > 0).astype(int)
    return out


def build_area_table(
    census: pd.DataFrame,
    environment: Optional[pd.DataFrame] = None,
    facility_counts: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """
    Join MSSA-level tables into one area table.

    Args:
        census: Output of load_census()
        environment: Output of load_environment()
        facility_counts: Output of count_facilities_by_mssa()

    Returns:
        One row per MSSA in the census table
    """
    areas = census.copy()

    if environment is not None:
        areas = areas.merge(environment, on='mssa_id', how='left', validate='one_to_one')

    if facility_counts is not None:
        areas = areas.merge(facility_counts, on='mssa_id', how='left', validate='one_to_one')
        count_cols = [c for c in facility_counts.columns if c != 'mssa_id']
        areas[count_cols] = areas[count_cols].fillna(0).astype(int)

        # Facilities per 100k residents
        pop = areas['population'].replace(0, np.nan)
        for col in [c for c in count_cols if c.startswith('n_')]:
            areas[f"{col[2:]}_per_100k"] = (areas[col] / pop * 100000).round(4)

    return areas


def join_visits_to_areas(visits: pd.DataFrame, areas: pd.DataFrame) -> pd.DataFrame:
    """
    Attach area-level covariates to each visit.

    Visits whose `mssa_id` is missing or not present in the area table are
    dropped and reported.

    Args:
        visits: Individual visit records with `mssa_id`
        areas: Output of build_area_table()

    Returns:
        Analysis dataset (one row per retained visit)
    """
    known = visits['mssa_id'].isin(areas['mssa_id'])
    n_dropped = int((~known).sum())
    if n_dropped > 0:
        print(f"  → dropped {n_dropped} visits with unknown or missing mssa_id")

    overlap = (set(visits.columns) & set(areas.columns)) - {'mssa_id'}
    if overlap:
        raise ValueError(f"Visit and area tables share columns: {sorted(overlap)}")

    merged = visits.loc[known].merge(
        areas, on='mssa_id', how='left', validate='many_to_one'
    )
    return merged.reset_index(drop=True)


def build_analysis_dataset(
    visits: pd.DataFrame,
    census_path: str,
    environment_path: Optional[str],
    facilities_path: Optional[str],
    shapes: gpd.GeoDataFrame,
    facility_types: Optional[List[str]] = None,
    output_path: Optional[str] = None,
    areas_output_path: Optional[str] = None
) -> pd.DataFrame:
    """
    Build the complete analysis dataset from labelled visits and area inputs.

    Args:
        visits: Visit records that already carry the `case` flag
        census_path: Path to MSSA census CSV
        environment_path: Path to MSSA environment CSV (optional)
        facilities_path: Path to facility locations CSV (optional)
        shapes: MSSA polygons in a projected CRS
        facility_types: Facility types to count
        output_path: If provided, save the analysis dataset (parquet)
        areas_output_path: If provided, save the area table (parquet)

    Returns:
        Analysis DataFrame
    """
    print("Loading MSSA census data...")
    census = load_census(census_path)
    print(f"  → {len(census)} MSSAs loaded")

    environment = None
    if environment_path:
        print("Loading MSSA environmental data...")
        environment = load_environment(environment_path)
        print(f"  → {len(environment)} MSSAs loaded")

    facility_counts = None
    if facilities_path:
        print("Counting facilities per MSSA...")
        facilities = load_facilities(facilities_path)
        facility_counts = count_facilities_by_mssa(facilities, shapes, facility_types)
        print(f"  → {len(facilities)} facilities, types: {facility_types or 'all'}")

    areas = build_area_table(census, environment, facility_counts)

    missing_shapes = set(areas['mssa_id']) - set(shapes['mssa_id'])
    if missing_shapes:
        print(f"  ⚠️  {len(missing_shapes)} census MSSAs have no boundary polygon")

    print("Joining visits to MSSAs...")
    dataset = join_visits_to_areas(visits, areas)
    print(f"  → {len(dataset)} visits in {dataset['mssa_id'].nunique()} MSSAs")

    if output_path:
        output_path = ensure_parent(output_path)
        dataset.to_parquet(output_path, index=False)
        print(f"  → Saved to {output_path}")

    if areas_output_path:
        areas_output_path = ensure_parent(areas_output_path)
        areas.to_parquet(areas_output_path, index=False)
        print(f"  → Saved area table to {areas_output_path}")

    return dataset
