"""
Spatial maps of MSSA-level data.

Choropleths use quantile classes computed with pandas (or the categories
themselves for categorical columns); MSSAs with missing values are drawn
in hatched grey so gaps in coverage stay visible.
"""
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
import geopandas as gpd
import matplotlib.pyplot as plt
from matplotlib.patches import Patch

from camrsa.common.paths import ensure_parent
from camrsa.data.loader import normalize_mssa_id


FIGSIZE = (10, 12)
DPI = 150
MISSING_KWDS = {'color': 'lightgrey', 'hatch': '///', 'edgecolor': 'darkgrey', 'label': 'Missing'}


def quantile_classes(values: pd.Series, n_classes: int = 5) -> pd.Series:
    """Quantile classes labelled "low - high"; ties collapse duplicate edges."""
    classes = pd.qcut(values, q=n_classes, duplicates='drop')
    return classes.cat.rename_categories(lambda iv: f"{iv.left:.3g} - {iv.right:.3g}")


def plot_choropleth(
    gdf: gpd.GeoDataFrame,
    column: str,
    title: str,
    output_path: str,
    categorical: bool = False,
    n_classes: int = 5,
    cmap: str = 'YlOrRd',
    dpi: int = DPI
) -> Path:
    """
    Draw and save a choropleth of `column`.

    Args:
        gdf: MSSA polygons joined to the data
        column: Column to map
        title: Figure title
        output_path: PNG path
        categorical: Map categories directly instead of quantile classes
        n_classes: Number of quantile classes for numeric columns
        cmap: Matplotlib colormap
        dpi: Output resolution

    Returns:
        Path of the saved figure
    """
    if column not in gdf.columns:
        raise KeyError(f"Column '{column}' not in GeoDataFrame")

    plot_gdf = gdf.copy()
    if categorical:
        plot_col = column
    else:
        plot_col = f"_{column}_class"
        plot_gdf[plot_col] = quantile_classes(plot_gdf[column], n_classes)

    fig, ax = plt.subplots(figsize=FIGSIZE)
    plot_gdf.plot(
        column=plot_col,
        categorical=True,
        cmap=cmap,
        linewidth=0.1,
        edgecolor='white',
        legend=True,
        legend_kwds={'loc': 'upper right', 'title': column},
        missing_kwds=MISSING_KWDS,
        ax=ax
    )
    ax.set_title(title, fontsize=14)
    ax.set_axis_off()

    output_path = ensure_parent(output_path)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    print(f"  → Saved map to {output_path}")
    return output_path


def plot_facilities(
    shapes: gpd.GeoDataFrame,
    facilities: pd.DataFrame,
    output_path: str,
    title: str = "Facility locations",
    dpi: int = DPI
) -> Path:
    """MSSA outlines with facility points coloured by facility type."""
    points = gpd.GeoDataFrame(
        facilities,
        geometry=gpd.points_from_xy(facilities['longitude'], facilities['latitude']),
        crs="EPSG:4326"
    ).to_crs(shapes.crs)

    fig, ax = plt.subplots(figsize=FIGSIZE)
    shapes.boundary.plot(ax=ax, linewidth=0.2, color='grey')

    types = sorted(points['facility_type'].unique())
    colors = plt.get_cmap('tab10')(np.linspace(0, 1, max(len(types), 1)))
    handles = []
    for ftype, color in zip(types, colors):
        subset = points[points['facility_type'] == ftype]
        subset.plot(ax=ax, markersize=6, color=color)
        handles.append(Patch(color=color, label=f"{ftype} (n={len(subset)})"))

    ax.legend(handles=handles, loc='upper right')
    ax.set_title(title, fontsize=14)
    ax.set_axis_off()

    output_path = ensure_parent(output_path)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    print(f"  → Saved map to {output_path}")
    return output_path


def plot_spatial_effect(
    shapes: gpd.GeoDataFrame,
    effect_df: pd.DataFrame,
    output_path: str,
    title: Optional[str] = None,
    dpi: int = DPI
) -> Path:
    """
    Map the posterior median MSSA odds ratio from BYM2Logistic.spatial_effects().

    A diverging colormap centred on OR = 1 (log scale) is used.
    """
    effects = effect_df[['mssa_id', 'or_median']].assign(mssa_id=normalize_mssa_id(effect_df['mssa_id']))
    gdf = shapes.assign(mssa_id=normalize_mssa_id(shapes['mssa_id'])).merge(effects, on='mssa_id', how='left')
    log_or = np.log(gdf['or_median'])
    bound = float(np.nanmax(np.abs(log_or))) if log_or.notna().any() else 1.0

    fig, ax = plt.subplots(figsize=FIGSIZE)
    gdf.assign(log_or=log_or).plot(
        column='log_or',
        cmap='RdBu_r',
        vmin=-bound,
        vmax=bound,
        linewidth=0.1,
        edgecolor='white',
        legend=True,
        legend_kwds={'label': 'log OR (MSSA random effect)', 'shrink': 0.6},
        missing_kwds=MISSING_KWDS,
        ax=ax
    )
    ax.set_title(title or "Posterior median MSSA effect", fontsize=14)
    ax.set_axis_off()

    output_path = ensure_parent(output_path)
    fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    plt.close(fig)
    print(f"  → Saved map to {output_path}")
    return output_path
