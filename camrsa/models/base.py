"""
Base Model Interface for the CA-MRSA poverty study

Abstract base class for the Bayesian logistic models. Holds everything
that does not depend on the random-effect structure:
- turning the analysis dataset into Stan data (design matrix, binomial cells)
- running CmdStanPy
- extracting posterior draws so fitted models can be pickled
- odds ratios, WAIC, fitted probabilities and MCMC diagnostics
"""
from abc import ABC, abstractmethod
import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Any
import pickle
import warnings
from pathlib import Path

from camrsa.config import get_project_root
from camrsa.evaluation.waic import compute_waic
from camrsa.features.recode import build_design_matrix, collapse_to_binomial

try:
    from cmdstanpy import CmdStanModel
    CMDSTAN_AVAILABLE = True
except ImportError:
    CMDSTAN_AVAILABLE = False
    warnings.warn("CmdStanPy not available. Install with: pip install cmdstanpy")


DEFAULT_MCMC = {
    'chains': 4,
    'iter_warmup': 1000,
    'iter_sampling': 1000,
    'adapt_delta': 0.95,
    'seed': 42,
}


class BaseModel(ABC):
    """Abstract base class for binomial logistic models fitted in Stan."""

    stan_filename: str = ""
    # Scalar/vector parameters reported by get_diagnostics()
    key_params: List[str] = ['alpha']

    def __init__(self, name: str, config: Optional[Dict] = None):
        """
        Initialize model.

        Args:
            name: Model identifier
            config: Model configuration (`mcmc`, `aggregate`, `stan_file`)
        """
        self.name = name
        self.config = config or {}
        self.mcmc = {**DEFAULT_MCMC, **self.config.get('mcmc', {})}
        self.aggregate = self.config.get('aggregate', True)
        self.stan_file = self.config.get('stan_file')

        self.is_fitted = False
        self.covariates: List[str] = []
        self.feature_names: List[str] = []

        # Fitted objects
        self.model_ = None
        self.fit_ = None
        self.data_: Optional[Dict[str, Any]] = None
        self.cells_: Optional[pd.DataFrame] = None
        self.draws_: Dict[str, np.ndarray] = {}
        self.summary_: Optional[pd.DataFrame] = None
        self.n_divergences_: Optional[int] = None

    # ------------------------------------------------------------------
    # Data preparation
    # ------------------------------------------------------------------

    def _get_stan_file(self) -> Path:
        """Get path to the Stan model file."""
        if self.stan_file:
            path = Path(self.stan_file)
        else:
            path = get_project_root() / "stan_models" / self.stan_filename
        if not path.exists():
            raise FileNotFoundError(f"Stan model not found: {path}")
        return path

    def _prepare_cells(
        self,
        df: pd.DataFrame,
        covariates: List[str],
        outcome: str,
        area_col: str,
        cell_covariates: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Binomial cells (or one cell per row when aggregation is off).

        Cells are formed over `cell_covariates` when given, so that models
        with different covariates share identical cells and their WAIC
        values are comparable.
        """
        if outcome not in df.columns:
            raise KeyError(f"Outcome column '{outcome}' not in data")

        if self.aggregate:
            keys = list(covariates)
            if cell_covariates is not None:
                missing = [c for c in covariates if c not in cell_covariates]
                if missing:
                    raise ValueError(f"cell_covariates must include model covariates: {missing}")
                keys = list(cell_covariates)
            return collapse_to_binomial(df, keys, area_col=area_col, outcome=outcome)

        cells = df[[area_col] + [c for c in covariates if c != area_col]].copy()
        cells['cases'] = df[outcome].astype(int).values
        cells['trials'] = 1
        return cells.reset_index(drop=True)

    def _prepare_stan_data(
        self,
        df: pd.DataFrame,
        covariates: List[str],
        outcome: str = 'case',
        area_col: str = 'mssa_id',
        cell_covariates: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Prepare data dictionary for Stan.

        Args:
            df: Recoded analysis dataset
            covariates: Covariate columns (exposure first)
            outcome: Binary outcome column
            area_col: MSSA identifier column
            cell_covariates: Covariates defining binomial cells (default: covariates)

        Returns:
            Dictionary formatted for Stan
        """
        cells = self._prepare_cells(df, covariates, outcome, area_col, cell_covariates)
        X, names = build_design_matrix(cells, covariates)

        self.cells_ = cells
        self.covariates = list(covariates)
        self.feature_names = names

        stan_data = {
            'N': len(cells),
            'K': X.shape[1],
            'X': X,
            'y': cells['cases'].to_numpy(dtype=int),
            'trials': cells['trials'].to_numpy(dtype=int),
        }
        stan_data.update(self._extra_stan_data(cells, area_col))

        self.data_ = stan_data
        return stan_data

    def _extra_stan_data(self, cells: pd.DataFrame, area_col: str) -> Dict[str, Any]:
        """Model-specific Stan data (random-effect structure)."""
        return {}

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def fit(
        self,
        df: pd.DataFrame,
        covariates: List[str],
        outcome: str = 'case',
        area_col: str = 'mssa_id',
        cell_covariates: Optional[List[str]] = None
    ) -> 'BaseModel':
        """
        Fit the model via MCMC.

        Args:
            df: Recoded analysis dataset
            covariates: Covariate columns (exposure first)
            outcome: Binary outcome column
            area_col: MSSA identifier column
            cell_covariates: Covariates defining binomial cells (default: covariates)

        Returns:
            self
        """
        if not CMDSTAN_AVAILABLE:
            raise RuntimeError("CmdStanPy required but not available")

        stan_file = self._get_stan_file()
        print(f"Compiling Stan model from {stan_file}...")
        self.model_ = CmdStanModel(stan_file=str(stan_file))

        print("Preparing data for Stan...")
        stan_data = self._prepare_stan_data(df, covariates, outcome, area_col, cell_covariates)
        print(f"Data summary: N={stan_data['N']} cells, K={stan_data['K']} columns, "
              f"visits={int(stan_data['trials'].sum())}, cases={int(stan_data['y'].sum())}")

        m = self.mcmc
        print(f"Running MCMC: {m['chains']} chains, {m['iter_warmup']} warmup, "
              f"{m['iter_sampling']} samples...")
        self.fit_ = self.model_.sample(
            data=stan_data,
            chains=m['chains'],
            iter_warmup=m['iter_warmup'],
            iter_sampling=m['iter_sampling'],
            adapt_delta=m['adapt_delta'],
            seed=m['seed'],
            show_progress=m.get('show_progress', True)
        )

        self._collect_draws(self.fit_)
        return self

    def _draw_variables(self) -> List[str]:
        """Stan variables kept after fitting."""
        return ['alpha', 'beta', 'log_lik']

    def _collect_draws(self, fit: Any) -> None:
        """Pull posterior draws, summary and divergences out of a CmdStanMCMC."""
        draws = {}
        for var in self._draw_variables():
            if var == 'beta' and self.data_ is not None and self.data_['K'] == 0:
                continue
            draws[var] = np.asarray(fit.stan_variable(var))

        n_draws = len(draws['alpha'])
        if 'beta' not in draws:
            draws['beta'] = np.zeros((n_draws, 0))
        draws['beta'] = draws['beta'].reshape(n_draws, -1)

        self.draws_ = draws

        summary = fit.summary()
        keep = ~summary.index.str.startswith(('log_lik', 'lp__'))
        self.summary_ = summary.loc[keep]

        divergences = getattr(fit, 'divergences', None)
        self.n_divergences_ = int(np.sum(divergences)) if divergences is not None else None

        self.is_fitted = True

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise RuntimeError("Model not fitted. Call fit() first.")

    # ------------------------------------------------------------------
    # Posterior summaries
    # ------------------------------------------------------------------

    def get_coefficient_draws(self) -> pd.DataFrame:
        """Posterior draws of the fixed effects, one column per design column."""
        self._check_fitted()
        return pd.DataFrame(self.draws_['beta'], columns=self.feature_names)

    def odds_ratios(self, interval: float = 0.95) -> pd.DataFrame:
        """
        Exponentiated coefficients.

        Args:
            interval: Width of the equal-tailed credible interval

        Returns:
            DataFrame with term, or_median, or_lower, or_upper, prob_or_gt_1
        """
        self._check_fitted()
        lo, hi = (1 - interval) / 2, 1 - (1 - interval) / 2
        beta = self.draws_['beta']

        rows = []
        for k, term in enumerate(self.feature_names):
            b = beta[:, k]
            rows.append({
                'model': self.name,
                'term': term,
                'or_median': float(np.exp(np.median(b))),
                'or_lower': float(np.exp(np.quantile(b, lo))),
                'or_upper': float(np.exp(np.quantile(b, hi))),
                'prob_or_gt_1': float(np.mean(b > 0)),
            })
        return pd.DataFrame(rows, columns=[
            'model', 'term', 'or_median', 'or_lower', 'or_upper', 'prob_or_gt_1'
        ])

    def log_likelihood(self) -> np.ndarray:
        """Pointwise log-likelihood draws, shape (S, N cells)."""
        self._check_fitted()
        return self.draws_['log_lik']

    def waic(self) -> Dict[str, float]:
        """WAIC of the fitted model."""
        return compute_waic(self.log_likelihood())

    def _linear_predictor(self) -> np.ndarray:
        """Draws of the linear predictor, shape (S, N cells)."""
        X = self.data_['X']
        return self.draws_['alpha'][:, None] + self.draws_['beta'] @ X.T

    def fitted_probabilities(self) -> np.ndarray:
        """Posterior mean probability of being a case, per cell."""
        self._check_fitted()
        eta = self._linear_predictor()
        return (1.0 / (1.0 + np.exp(-eta))).mean(axis=0)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_diagnostics(self) -> Dict[str, Any]:
        """
        Get MCMC diagnostics.

        Returns:
            Dictionary with R-hat, ESS, divergences, key parameter summaries
        """
        self._check_fitted()
        summary = self.summary_
        ess_col = 'ESS_bulk' if 'ESS_bulk' in summary.columns else 'N_Eff'

        diagnostics = {
            'n_divergences': self.n_divergences_,
            'max_rhat': float(summary['R_hat'].max()),
            'min_ess_bulk': float(summary[ess_col].min()),
            'parameter_summary': {}
        }

        for param in self.key_params:
            if param in summary.index:
                row = summary.loc[param]
                diagnostics['parameter_summary'][param] = {
                    'mean': float(row['Mean']),
                    'std': float(row['StdDev']),
                    'rhat': float(row['R_hat']),
                    'ess_bulk': float(row[ess_col])
                }

        return diagnostics

    def print_diagnostics(self) -> None:
        """Print formatted diagnostics summary."""
        diag = self.get_diagnostics()

        print("\n" + "=" * 50)
        print(f"MCMC DIAGNOSTICS ({self.name})")
        print("=" * 50)

        print(f"\nDivergences: {diag['n_divergences']}")
        print(f"Max R-hat: {diag['max_rhat']:.4f}")
        print(f"Min ESS (bulk): {diag['min_ess_bulk']:.0f}")

        print("\nParameter Estimates:")
        print("-" * 50)
        print(f"{'Parameter':<15} {'Mean':>10} {'Std':>10} {'R-hat':>8} {'ESS':>8}")
        print("-" * 50)

        for param, vals in diag['parameter_summary'].items():
            print(f"{param:<15} {vals['mean']:>10.3f} {vals['std']:>10.3f} "
                  f"{vals['rhat']:>8.3f} {vals['ess_bulk']:>8.0f}")

        print("\n" + "-" * 50)
        divergent = bool(diag['n_divergences'])
        if divergent:
            print("⚠️  WARNING: Divergences detected!")
        if diag['max_rhat'] > 1.01:
            print("⚠️  WARNING: R-hat > 1.01 (chains may not have converged)")
        if diag['min_ess_bulk'] < 400:
            print("⚠️  WARNING: Low ESS (< 400)")

        if not divergent and diag['max_rhat'] <= 1.01 and diag['min_ess_bulk'] >= 400:
            print("✓ All diagnostics passed")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def __getstate__(self):
        # CmdStan objects point at temporary CSV files; keep the draws only
        state = self.__dict__.copy()
        state['model_'] = None
        state['fit_'] = None
        return state

    def save(self, path: str) -> None:
        """Save model to disk."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'wb') as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, path: str) -> 'BaseModel':
        """Load model from disk."""
        with open(path, 'rb') as f:
            return pickle.load(f)

    @abstractmethod
    def describe(self) -> str:
        """One-line description of the model structure."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', fitted={self.is_fitted})"
