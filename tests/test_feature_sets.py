"""
Tests for model covariate sets.
"""

import pytest

from camrsa.config import load_config
from camrsa.features.feature_sets import (
    ModelSpec,
    select_covariates,
    model_specs_from_config,
    all_covariates,
)


class TestSelectCovariates:
    """Tests for covariate ordering."""

    def test_exposure_first(self):
        spec = ModelSpec('m3', confounders=['age_group', 'sex'], mediators=['pct_crowded'])
        assert select_covariates(spec) == ['poverty_cat', 'age_group', 'sex', 'pct_crowded']

    def test_continuous_exposure(self):
        spec = ModelSpec('m1')
        assert select_covariates(spec, exposure_form="continuous") == ['poverty_per10']

    def test_null_model_has_no_covariates(self):
        assert select_covariates(ModelSpec('m0', exposure=False)) == []

    def test_drop_and_dedupe(self):
        spec = ModelSpec('m8', confounders=['sex'], mediators=['sex', 'any_correctional', 'payer'])
        assert select_covariates(spec, drop=['any_correctional']) == ['poverty_cat', 'sex', 'payer']

    def test_unknown_exposure_form(self):
        with pytest.raises(ValueError):
            select_covariates(ModelSpec('m1'), exposure_form="log")


class TestSpecsFromConfig:
    """Tests for the configured model sequence."""

    def test_default_sequence(self):
        specs = model_specs_from_config(load_config()['models'])
        names = [s.name for s in specs]
        assert names[0] == 'm0_null'
        assert not specs[0].exposure
        assert 'm8_full' in names

    def test_duplicate_names_raise(self):
        with pytest.raises(ValueError):
            model_specs_from_config({'sequence': [{'name': 'a'}, {'name': 'a'}]})

    def test_spec_without_name_raises(self):
        with pytest.raises(ValueError):
            ModelSpec.from_dict({'confounders': ['sex']})

    def test_all_covariates_union(self):
        specs = [
            ModelSpec('m0', exposure=False),
            ModelSpec('m2', confounders=['age_group', 'sex']),
            ModelSpec('m3', confounders=['age_group', 'sex'], mediators=['pct_crowded']),
            ModelSpec('m5', confounders=['age_group', 'sex'], mediators=['payer']),
        ]
        assert all_covariates(specs) == ['poverty_cat', 'age_group', 'sex', 'pct_crowded', 'payer']
