"""
Sensitivity analyses.

Each scenario re-fits one model of the sequence under a changed setup:
a subset of the data (pandas query), a different exposure form
(poverty per 10 points instead of categories), or no spatial effect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from camrsa.features.feature_sets import ModelSpec, select_covariates


@dataclass
class SensitivityScenario:
    """One sensitivity analysis."""
    name: str
    description: str = ""
    query: Optional[str] = None
    exposure: str = "category"
    spatial: bool = True
    model: Optional[str] = None
    drop_mediators: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict, default_model: Optional[str] = None) -> "SensitivityScenario":
        if 'name' not in d:
            raise ValueError(f"Sensitivity scenario without a name: {d}")
        exposure = d.get('exposure', 'category')
        if exposure not in ('category', 'continuous'):
            raise ValueError(f"Scenario {d['name']}: unknown exposure '{exposure}'")
        return cls(
            name=d['name'],
            description=d.get('description', ''),
            query=d.get('query'),
            exposure=exposure,
            spatial=bool(d.get('spatial', True)),
            model=d.get('model', default_model),
            drop_mediators=list(d.get('drop_mediators') or []),
        )


def scenarios_from_config(sens_cfg: Dict) -> List[SensitivityScenario]:
    """Parse the `sensitivity` config block."""
    default_model = sens_cfg.get('model')
    scenarios = [
        SensitivityScenario.from_dict(d, default_model)
        for d in sens_cfg.get('scenarios', [])
    ]
    names = [s.name for s in scenarios]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate scenario names: {names}")
    return scenarios


def apply_scenario(df: pd.DataFrame, scenario: SensitivityScenario, outcome: str = 'case') -> pd.DataFrame:
    """
    Restrict the analysis dataset for a scenario.

    Raises:
        ValueError: if the subset contains no cases or no controls
    """
    subset = df.query(scenario.query) if scenario.query else df
    subset = subset.reset_index(drop=True)

    n_cases = int(subset[outcome].sum())
    if n_cases == 0 or n_cases == len(subset):
        raise ValueError(
            f"Scenario '{scenario.name}' leaves {n_cases} cases in {len(subset)} visits"
        )
    return subset


def scenario_covariates(spec: ModelSpec, scenario: SensitivityScenario) -> List[str]:
    """Covariate list of `spec` adjusted for the scenario."""
    return select_covariates(spec, exposure_form=scenario.exposure, drop=scenario.drop_mediators)


def scenario_exposure_terms(scenario: SensitivityScenario, category_terms: List[str]) -> List[str]:
    """Design columns carrying the exposure effect in this scenario."""
    if scenario.exposure == 'continuous':
        return ['poverty_per10']
    return list(category_terms)
