"""Shared fixtures: a tiny MSSA grid, visit records and a fake Stan fit."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import geopandas as gpd
import pytest
from shapely.geometry import box


@pytest.fixture
def grid_shapes():
    """3x3 grid of unit squares (ids m0..m8, row-major) in a projected CRS."""
    cells = []
    for r in range(3):
        for c in range(3):
            cells.append({'mssa_id': f"m{r * 3 + c}", 'geometry': box(c, r, c + 1, r + 1)})
    return gpd.GeoDataFrame(cells, crs="EPSG:3310")


@pytest.fixture
def grid_with_island(grid_shapes):
    """The 3x3 grid plus an isolated square far to the east."""
    island = gpd.GeoDataFrame(
        [{'mssa_id': 'm9', 'geometry': box(10, 0, 11, 1)}], crs="EPSG:3310"
    )
    return gpd.GeoDataFrame(pd.concat([grid_shapes, island], ignore_index=True), crs="EPSG:3310")


@pytest.fixture
def census_df():
    return pd.DataFrame({
        'mssa_id': ['m0', 'm1', 'm2', 'm3'],
        'mssa_name': ['A', 'B', 'C', 'D'],
        'population': [1000, 2000, 0, 4000],
        'pct_poverty': [5.0, 12.0, 25.0, 40.0],
        'pct_crowded': [2.0, 4.0, 6.0, 8.0],
    })


@pytest.fixture
def visits_df():
    """Recoded-style visit rows over four MSSAs."""
    rng = np.random.default_rng(0)
    n = 80
    areas = np.array(['m0', 'm1', 'm2', 'm3'])
    mssa = areas[np.arange(n) % 4]
    pov = pd.Categorical(
        np.array(["<10%", "10-19.9%", "20-29.9%", ">=30%"])[np.arange(n) % 4],
        categories=["<10%", "10-19.9%", "20-29.9%", ">=30%"], ordered=True
    )
    sex = pd.Categorical(np.where(np.arange(n) % 2 == 0, 'Female', 'Male'),
                         categories=['Female', 'Male'])
    return pd.DataFrame({
        'mssa_id': mssa,
        'poverty_cat': pov,
        'poverty_per10': np.array([0.5, 1.2, 2.5, 4.0])[np.arange(n) % 4],
        'sex': sex,
        'age': rng.integers(1, 90, n),
        'pct_crowded': np.array([-1.0, -0.3, 0.3, 1.0])[np.arange(n) % 4],
        'case': (np.arange(n) % 5 == 0).astype(int),
    })


class FakeFit:
    """Stands in for cmdstanpy.CmdStanMCMC."""

    def __init__(self, variables, summary=None, divergences=None):
        self.variables = variables
        self._summary = summary
        self.divergences = divergences

    def stan_variable(self, name):
        return self.variables[name]

    def summary(self):
        if self._summary is not None:
            return self._summary
        rows = {}
        for name, arr in self.variables.items():
            if name == 'log_lik':
                continue
            arr = np.asarray(arr)
            if arr.ndim == 1:
                rows[name] = [arr.mean(), arr.std(), 1.001, 800.0]
            else:
                for k in range(arr.shape[1]):
                    rows[f"{name}[{k + 1}]"] = [arr[:, k].mean(), arr[:, k].std(), 1.002, 750.0]
        rows['lp__'] = [-100.0, 2.0, 1.0, 900.0]
        return pd.DataFrame.from_dict(
            rows, orient='index', columns=['Mean', 'StdDev', 'R_hat', 'ESS_bulk']
        )


@pytest.fixture
def fake_fit_cls():
    return FakeFit
