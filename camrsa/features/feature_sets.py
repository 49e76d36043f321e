"""Covariate set definitions.

Each model in the sequence is described by a small spec in the config:

    - name: m3_crowding
      exposure: true            # optional, default true
      confounders: [age_group, sex, race_eth]
      mediators: [pct_crowded]

This module turns such a spec into an ordered covariate list. The exposure
always comes first so that its coefficients are the leading design columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional


ExposureForm = Literal["category", "continuous"]

EXPOSURE_COLUMNS: Dict[str, str] = {
    "category": "poverty_cat",
    "continuous": "poverty_per10",
}


@dataclass
class ModelSpec:
    """One model of the sequence."""
    name: str
    exposure: bool = True
    confounders: List[str] = field(default_factory=list)
    mediators: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Dict) -> "ModelSpec":
        if 'name' not in d:
            raise ValueError(f"Model spec without a name: {d}")
        return cls(
            name=d['name'],
            exposure=bool(d.get('exposure', True)),
            confounders=list(d.get('confounders') or []),
            mediators=list(d.get('mediators') or []),
        )


def select_covariates(
    spec: ModelSpec,
    exposure_form: ExposureForm = "category",
    drop: Optional[Iterable[str]] = None,
) -> List[str]:
    """Expand a model spec into its ordered covariate list.

    Args:
        spec: The model spec.
        exposure_form: "category" uses poverty categories, "continuous"
            uses poverty per 10 percentage points.
        drop: Covariates to leave out (e.g. a mediator that is constant
            within a sensitivity subset).

    Returns:
        Exposure, then confounders, then mediators, without duplicates.
    """
    if exposure_form not in EXPOSURE_COLUMNS:
        raise ValueError(f"Unknown exposure form: {exposure_form}")

    dropped = set(drop or [])
    ordered: List[str] = []
    if spec.exposure:
        ordered.append(EXPOSURE_COLUMNS[exposure_form])
    ordered.extend(spec.confounders)
    ordered.extend(spec.mediators)

    seen = set()
    selected = []
    for c in ordered:
        if c in dropped or c in seen:
            continue
        seen.add(c)
        selected.append(c)
    return selected


def model_specs_from_config(models_cfg: Dict) -> List[ModelSpec]:
    """Parse `models.sequence` from the config, checking names are unique."""
    specs = [ModelSpec.from_dict(d) for d in models_cfg.get('sequence', [])]
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate model names in sequence: {names}")
    return specs


def all_covariates(specs: Iterable[ModelSpec], exposure_form: ExposureForm = "category") -> List[str]:
    """Union of the covariates of every spec, in first-seen order.

    Used to fix one complete-case sample and one set of binomial cells for
    the whole model sequence so WAIC values are comparable.
    """
    seen: List[str] = []
    for spec in specs:
        for c in select_covariates(spec, exposure_form):
            if c not in seen:
                seen.append(c)
    return seen
