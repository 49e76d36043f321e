"""
Tests for the Stan-backed logistic models.

Sampling itself needs CmdStan, so these tests feed a fake fit object
through the same draw-collection path used after MCMC.
"""

import numpy as np
import pandas as pd
import pytest

from camrsa.models.bayesian.bym2_logistic import BYM2Logistic, FixedEffectsLogistic
from camrsa.spatial.adjacency import AdjacencyGraph

S = 200


@pytest.fixture
def path_graph():
    """m0 - m1 - m2 - m3."""
    return AdjacencyGraph(['m0', 'm1', 'm2', 'm3'], np.array([1, 2, 3]), np.array([2, 3, 4]))


def _fit_bym2(model, df, fake_fit_cls, covariates, beta_means, re_means=(0.2, -0.1, 0.0, -0.1)):
    rng = np.random.default_rng(3)
    data = model._prepare_stan_data(df, covariates)
    K, N, J = data['K'], data['N'], data['J']
    variables = {
        'alpha': rng.normal(-1.5, 0.1, S),
        'beta': rng.normal(beta_means, 0.05, size=(S, K)),
        'log_lik': rng.normal(-2.0, 0.2, size=(S, N)),
        'sigma': np.abs(rng.normal(0.5, 0.05, S)),
        'rho': rng.uniform(0.3, 0.7, S),
        'convolved_re': rng.normal(re_means, 0.01, size=(S, J)),
    }
    model._collect_draws(fake_fit_cls(variables, divergences=np.array([0, 1, 0, 0])))
    return model


class TestStanData:
    """Tests for Stan data preparation."""

    def test_binomial_cells(self, visits_df, path_graph):
        model = BYM2Logistic('m1', path_graph, config={'aggregate': True})
        data = model._prepare_stan_data(visits_df, ['poverty_cat'])

        assert data['N'] == 4
        assert data['K'] == 3
        assert data['trials'].sum() == len(visits_df)
        assert data['y'].sum() == visits_df['case'].sum()
        assert data['J'] == 4
        assert data['N_edges'] == 3
        assert model.feature_names[0] == "poverty_cat[10-19.9%]"

    def test_area_index_follows_graph(self, visits_df, path_graph):
        model = BYM2Logistic('m1', path_graph)
        data = model._prepare_stan_data(visits_df, ['poverty_cat'])
        expected = path_graph.index_of(model.cells_['mssa_id'])
        np.testing.assert_array_equal(data['area'], expected)

    def test_individual_rows_without_aggregation(self, visits_df, path_graph):
        model = BYM2Logistic('m1', path_graph, config={'aggregate': False})
        data = model._prepare_stan_data(visits_df, ['poverty_cat', 'sex'])
        assert data['N'] == len(visits_df)
        assert set(data['trials']) == {1}

    def test_shared_cells_across_models(self, visits_df, path_graph):
        cells = ['poverty_cat', 'sex', 'pct_crowded']
        small = BYM2Logistic('m1', path_graph)
        big = BYM2Logistic('m3', path_graph)
        d_small = small._prepare_stan_data(visits_df, ['poverty_cat'], cell_covariates=cells)
        d_big = big._prepare_stan_data(visits_df, cells, cell_covariates=cells)
        assert d_small['N'] == d_big['N']
        np.testing.assert_array_equal(d_small['trials'], d_big['trials'])

    def test_cell_covariates_must_cover_model(self, visits_df, path_graph):
        model = BYM2Logistic('m3', path_graph)
        with pytest.raises(ValueError):
            model._prepare_stan_data(visits_df, ['poverty_cat', 'sex'], cell_covariates=['poverty_cat'])

    def test_missing_covariate_raises_when_aggregated(self, visits_df, path_graph):
        """Aggregated and row-level data reject incomplete covariates alike."""
        df = visits_df.copy()
        df.loc[:9, 'pct_crowded'] = np.nan
        for aggregate in (True, False):
            model = BYM2Logistic('m3', path_graph, config={'aggregate': aggregate})
            with pytest.raises(ValueError):
                model._prepare_stan_data(df, ['poverty_cat', 'pct_crowded'])

    def test_subset_without_level_has_no_empty_column(self, visits_df):
        model = FixedEffectsLogistic('adults', config={'aggregate': True})
        subset = visits_df[visits_df['poverty_cat'] != ">=30%"]
        data = model._prepare_stan_data(subset, ['poverty_cat'])
        assert data['K'] == 2
        assert (data['X'].sum(axis=0) > 0).all()

    def test_unknown_area_raises(self, visits_df):
        graph = AdjacencyGraph(['m0', 'm1'], np.array([1]), np.array([2]))
        model = BYM2Logistic('m1', graph)
        with pytest.raises(KeyError):
            model._prepare_stan_data(visits_df, ['poverty_cat'])

    def test_missing_outcome_raises(self, visits_df, path_graph):
        model = BYM2Logistic('m1', path_graph)
        with pytest.raises(KeyError):
            model._prepare_stan_data(visits_df.drop(columns='case'), ['poverty_cat'])

    def test_scaling_factor_computed(self, path_graph):
        model = BYM2Logistic('m1', path_graph)
        assert model.scaling_factor > 0
        assert BYM2Logistic('m1', path_graph, scaling_factor=0.7).scaling_factor == 0.7


class TestPosterior:
    """Tests for posterior summaries from collected draws."""

    def test_not_fitted(self, path_graph):
        model = BYM2Logistic('m1', path_graph)
        with pytest.raises(RuntimeError):
            model.odds_ratios()

    def test_odds_ratios(self, visits_df, path_graph, fake_fit_cls):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        ors = model.odds_ratios()

        assert list(ors['term']) == model.feature_names
        assert (ors['model'] == 'm1').all()
        row = ors.set_index('term').loc["poverty_cat[>=30%]"]
        assert row['or_median'] == pytest.approx(np.exp(0.7), rel=0.02)
        assert row['or_lower'] < row['or_median'] < row['or_upper']
        assert row['prob_or_gt_1'] == 1.0

    def test_coefficient_draws(self, visits_df, path_graph, fake_fit_cls):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        draws = model.get_coefficient_draws()
        assert draws.shape == (S, 3)
        assert list(draws.columns) == model.feature_names

    def test_null_model_has_no_beta(self, visits_df, path_graph, fake_fit_cls):
        model = _fit_bym2(BYM2Logistic('m0', path_graph), visits_df, fake_fit_cls, [], beta_means=[])
        assert model.draws_['beta'].shape == (S, 0)
        assert model.odds_ratios().empty
        assert model.fitted_probabilities().shape == (4,)

    def test_waic_and_fitted_probabilities(self, visits_df, path_graph, fake_fit_cls):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        res = model.waic()
        assert res['n_obs'] == 4
        p = model.fitted_probabilities()
        assert p.shape == (4,)
        assert ((p > 0) & (p < 1)).all()

    def test_spatial_effects(self, visits_df, path_graph, fake_fit_cls):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        eff = model.spatial_effects()
        assert list(eff['mssa_id']) == ['m0', 'm1', 'm2', 'm3']
        assert eff.loc[0, 'or_median'] == pytest.approx(np.exp(0.2), rel=0.02)
        assert 0.3 < model.variance_components()['rho'] < 0.7

    def test_diagnostics(self, visits_df, path_graph, fake_fit_cls, capsys):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        diag = model.get_diagnostics()
        assert diag['n_divergences'] == 1
        assert diag['max_rhat'] == pytest.approx(1.002)
        assert set(diag['parameter_summary']) == {'alpha', 'sigma', 'rho'}
        assert not any(i.startswith('log_lik') for i in model.summary_.index)

        model.print_diagnostics()
        assert "Divergences detected" in capsys.readouterr().out

    def test_pickle_round_trip(self, visits_df, path_graph, fake_fit_cls, tmp_path):
        model = _fit_bym2(BYM2Logistic('m1', path_graph), visits_df, fake_fit_cls,
                          ['poverty_cat'], beta_means=[0.1, 0.4, 0.7])
        path = tmp_path / "models" / "m1.pkl"
        model.save(path)
        loaded = BYM2Logistic.load(path)

        assert loaded.is_fitted
        assert loaded.fit_ is None
        pd.testing.assert_frame_equal(loaded.odds_ratios(), model.odds_ratios())


class TestFixedEffects:
    """Tests for the non-spatial model."""

    def test_no_area_data(self, visits_df):
        model = FixedEffectsLogistic('nonspatial')
        data = model._prepare_stan_data(visits_df, ['poverty_cat', 'sex'])
        assert 'area' not in data
        assert data['K'] == 4

    def test_fitted_probabilities(self, visits_df, fake_fit_cls):
        model = FixedEffectsLogistic('nonspatial')
        data = model._prepare_stan_data(visits_df, ['poverty_per10'])
        fit = fake_fit_cls({
            'alpha': np.full(10, -2.0),
            'beta': np.full((10, 1), 0.5),
            'log_lik': np.full((10, data['N']), -1.0),
        })
        model._collect_draws(fit)
        p = model.fitted_probabilities()
        expected = 1.0 / (1.0 + np.exp(-(-2.0 + 0.5 * model.cells_['poverty_per10'].to_numpy())))
        np.testing.assert_allclose(p, expected)
        assert model.get_diagnostics()['n_divergences'] is None

    def test_stan_files_exist(self):
        assert FixedEffectsLogistic('x')._get_stan_file().name == "logistic_fixed.stan"
        graph = AdjacencyGraph(['a', 'b'], np.array([1]), np.array([2]))
        assert BYM2Logistic('x', graph)._get_stan_file().exists()


class TestCmdStanImport:
    """Tests for the CmdStanPy availability flag."""

    def test_warns_when_cmdstanpy_missing(self, monkeypatch):
        import importlib
        import sys
        import camrsa.models.base as base

        monkeypatch.setitem(sys.modules, 'cmdstanpy', None)
        try:
            with pytest.warns(UserWarning, match="CmdStanPy not available"):
                importlib.reload(base)
            assert not base.CMDSTAN_AVAILABLE
        finally:
            monkeypatch.undo()
            importlib.reload(base)
