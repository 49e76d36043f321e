"""
Tests for sensitivity scenarios.
"""

import pytest

from camrsa.analysis.sensitivity import (
    SensitivityScenario,
    scenarios_from_config,
    apply_scenario,
    scenario_covariates,
    scenario_exposure_terms,
)
from camrsa.config import load_config
from camrsa.features.feature_sets import ModelSpec

CATEGORY_TERMS = ["poverty_cat[10-19.9%]", "poverty_cat[20-29.9%]", "poverty_cat[>=30%]"]


class TestScenarioParsing:
    """Tests for scenario config blocks."""

    def test_default_scenarios(self):
        scenarios = scenarios_from_config(load_config()['sensitivity'])
        by_name = {s.name: s for s in scenarios}
        assert not by_name['nonspatial'].spatial
        assert by_name['continuous_poverty'].exposure == 'continuous'
        assert by_name['adults_only'].model == 'm8_full'

    def test_bad_exposure_raises(self):
        with pytest.raises(ValueError):
            SensitivityScenario.from_dict({'name': 'x', 'exposure': 'log'})

    def test_duplicate_names_raise(self):
        with pytest.raises(ValueError):
            scenarios_from_config({'scenarios': [{'name': 'a'}, {'name': 'a'}]})


class TestApplyScenario:
    """Tests for data subsets."""

    def test_query_subset(self, visits_df):
        scenario = SensitivityScenario('adults', query="age >= 18")
        out = apply_scenario(visits_df, scenario)
        assert (out['age'] >= 18).all()
        assert len(out) == (visits_df['age'] >= 18).sum()

    def test_no_query_keeps_all(self, visits_df):
        assert len(apply_scenario(visits_df, SensitivityScenario('all'))) == len(visits_df)

    def test_no_cases_raises(self, visits_df):
        scenario = SensitivityScenario('controls', query="case == 0")
        with pytest.raises(ValueError):
            apply_scenario(visits_df, scenario)


class TestScenarioCovariates:
    """Tests for scenario covariate adjustments."""

    def test_drop_mediator_and_continuous(self):
        spec = ModelSpec('m8', confounders=['sex'], mediators=['pct_crowded', 'any_correctional'])
        scenario = SensitivityScenario('x', exposure='continuous', drop_mediators=['any_correctional'])
        assert scenario_covariates(spec, scenario) == ['poverty_per10', 'sex', 'pct_crowded']

    def test_exposure_terms(self):
        assert scenario_exposure_terms(SensitivityScenario('c', exposure='continuous'),
                                       CATEGORY_TERMS) == ['poverty_per10']
        assert scenario_exposure_terms(SensitivityScenario('k'), CATEGORY_TERMS) == CATEGORY_TERMS
