"""
Tests for maps and result plots (figures are written, not inspected).
"""

import numpy as np
import pandas as pd
import pytest

from camrsa.mapping.maps import (
    quantile_classes,
    plot_choropleth,
    plot_facilities,
    plot_spatial_effect,
)
from camrsa.visualization.plots import plot_odds_ratio_forest, plot_waic_comparison, plot_mediation


class TestMaps:
    """Tests for MSSA maps."""

    def test_quantile_classes(self):
        classes = quantile_classes(pd.Series(np.arange(10.0)), n_classes=5)
        assert classes.cat.categories.size == 5
        assert all(" - " in c for c in classes.cat.categories)

    def test_choropleth(self, grid_shapes, tmp_path):
        gdf = grid_shapes.assign(pct_poverty=np.linspace(2, 40, 9))
        gdf.loc[3, 'pct_poverty'] = np.nan
        path = plot_choropleth(gdf, 'pct_poverty', "Poverty", tmp_path / "poverty.png", n_classes=3)
        assert path.exists()

    def test_categorical_choropleth(self, grid_shapes, tmp_path):
        gdf = grid_shapes.assign(group=['a', 'b', 'c'] * 3)
        path = plot_choropleth(gdf, 'group', "Group", tmp_path / "group.png", categorical=True)
        assert path.exists()

    def test_missing_column(self, grid_shapes, tmp_path):
        with pytest.raises(KeyError):
            plot_choropleth(grid_shapes, 'nope', "x", tmp_path / "x.png")

    def test_facilities(self, grid_shapes, tmp_path):
        points = grid_shapes.geometry.centroid.to_crs("EPSG:4326")
        facilities = pd.DataFrame({
            'facility_type': ['correctional', 'military', 'nursing_home'] * 3,
            'latitude': points.y.values,
            'longitude': points.x.values,
        })
        assert plot_facilities(grid_shapes, facilities, tmp_path / "fac.png").exists()

    def test_spatial_effect(self, grid_shapes, tmp_path):
        effects = pd.DataFrame({'mssa_id': [f"m{k}" for k in range(8)],
                                'or_median': np.linspace(0.7, 1.4, 8)})
        assert plot_spatial_effect(grid_shapes, effects, tmp_path / "re.png").exists()


class TestResultPlots:
    """Tests for result figures."""

    def test_forest(self, tmp_path):
        table = pd.DataFrame({
            'model': ['m1', 'm1', 'm2'],
            'term': ['poverty_cat[10-19.9%]', 'poverty_cat[>=30%]', 'poverty_cat[>=30%]'],
            'or_median': [1.1, 1.6, 1.4],
            'or_lower': [0.9, 1.3, 1.1],
            'or_upper': [1.3, 1.9, 1.7],
        })
        path = plot_odds_ratio_forest(table, tmp_path / "forest.png", terms=['poverty_cat[>=30%]'])
        assert path.exists()

    def test_forest_empty_raises(self, tmp_path):
        table = pd.DataFrame(columns=['model', 'term', 'or_median', 'or_lower', 'or_upper'])
        with pytest.raises(ValueError):
            plot_odds_ratio_forest(table, tmp_path / "forest.png")

    def test_waic(self, tmp_path):
        table = pd.DataFrame({'waic': [100.0, 110.0], 'se': [4.0, 5.0], 'delta_waic': [0.0, 10.0]},
                             index=pd.Index(['m2', 'm1'], name='model'))
        assert plot_waic_comparison(table, tmp_path / "waic.png").exists()

    def test_mediation(self, tmp_path):
        table = pd.DataFrame({
            'mediator_model': ['m3', 'm3', 'm4', 'm4'],
            'term': ['a', 'b', 'a', 'b'],
            'pct_explained': [10.0, 12.0, 30.0, 25.0],
            'pct_lower': [2.0, 4.0, 20.0, 15.0],
            'pct_upper': [18.0, 20.0, 40.0, 35.0],
        })
        assert plot_mediation(table, tmp_path / "med.png").exists()
        with pytest.raises(ValueError):
            plot_mediation(table.iloc[0:0], tmp_path / "empty.png")
