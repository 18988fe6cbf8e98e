"""Stock-recruitment models for projections.

Recruits entering the youngest age next year are predicted from this year's
stock-recruitment potential (SRP, mature biomass at spawning):

    R(y+1) = f(SRP(y); params) × residual(y+1, iter)

Variants:
  - ConstantRecruitment: R = a              (ignores SRP; short forecasts)
  - GeometricMean:       R = a              (FLR 'geomean' naming)
  - BevertonHolt:        R = a·S / (b + S)
  - Ricker:              R = a·S·exp(−b·S)
  - CustomRecruitment:   R = func(S, **params)

Parameters may be scalars or per-iteration arrays. Residuals are
multiplicative, default to 1, and are supplied pre-filled (see residuals.py);
models never draw random numbers themselves.
"""

from __future__ import annotations

import copy
from typing import Callable, Dict, Optional, Sequence

import numpy as np

from stockfwd.errors import ConfigurationError
from stockfwd.quant import Quant


class RecruitmentModel:
    """Base class. Subclasses implement `deterministic(srp, iteration)`."""

    name = 'base'
    param_names: Sequence[str] = ()

    def __init__(
        self,
        params: Dict[str, object],
        residuals=None,
        residual_years: Optional[Sequence[int]] = None,
    ):
        missing = [p for p in self.param_names if p not in params]
        if missing:
            raise ValueError(f"{self.name} recruitment needs parameters {missing}")
        self.params = {k: np.atleast_1d(np.asarray(v, dtype=np.float64))
                       for k, v in params.items()}
        self._residuals: Optional[np.ndarray] = None
        self._residual_years: Dict[int, int] = {}
        if residuals is not None:
            self._set_residuals(residuals, residual_years)

    # ── Parameters and residuals ─────────────────────────────────────

    def param(self, name: str, iteration: int) -> float:
        arr = self.params[name]
        if arr.size == 1:
            return float(arr[0])
        if iteration >= arr.size:
            raise ValueError(
                f"Parameter '{name}' has {arr.size} iterations, "
                f"iteration {iteration} requested"
            )
        return float(arr[iteration])

    def _set_residuals(self, residuals, residual_years) -> None:
        if isinstance(residuals, Quant):
            data = residuals.data[0]
            years = residuals.years
        else:
            data = np.asarray(residuals, dtype=np.float64)
            if data.ndim == 1:
                data = data[:, None]
            if residual_years is None:
                raise ValueError("residual_years is required for array residuals")
            years = [int(y) for y in residual_years]
        if data.ndim != 2 or data.shape[0] != len(years):
            raise ValueError(
                f"Residuals must be (n_years, n_iters) matching {len(years)} years, "
                f"got shape {data.shape}"
            )
        if np.any(~np.isfinite(data)) or np.any(data <= 0):
            raise ValueError("Recruitment residuals must be finite and positive")
        self._residuals = np.array(data)
        self._residual_years = {y: i for i, y in enumerate(years)}

    def with_residuals(self, residuals, residual_years=None) -> 'RecruitmentModel':
        """Copy of this model with a new residual table."""
        out = copy.copy(self)
        out._residuals = None
        out._residual_years = {}
        out._set_residuals(residuals, residual_years)
        return out

    @property
    def n_iters(self) -> int:
        """Iterations carried by parameters and residuals (1 = broadcast)."""
        sizes = [a.size for a in self.params.values()]
        if self._residuals is not None:
            sizes.append(self._residuals.shape[1])
        return max(sizes, default=1)

    def residual(self, year: int, iteration: int) -> float:
        if self._residuals is None:
            return 1.0
        row = self._residual_years.get(int(year))
        if row is None:
            return 1.0
        values = self._residuals[row]
        return float(values[0] if values.size == 1 else values[iteration])

    # ── Prediction ───────────────────────────────────────────────────

    def deterministic(self, srp: float, iteration: int) -> float:
        raise NotImplementedError

    def predict(self, srp: float, year: int, iteration: int) -> float:
        """Recruits for `year`, driven by the previous year's SRP."""
        rec = max(0.0, self.deterministic(srp, iteration))
        return rec * self.residual(year, iteration)

    def __repr__(self) -> str:
        params = {k: (float(v[0]) if v.size == 1 else f"<{v.size} iters>")
                  for k, v in self.params.items()}
        return f"{type(self).__name__}({params})"


class ConstantRecruitment(RecruitmentModel):
    """Constant mean recruitment, independent of SRP."""

    name = 'mean'
    param_names = ('a',)

    def __init__(self, a, residuals=None, residual_years=None):
        super().__init__({'a': a}, residuals, residual_years)

    def deterministic(self, srp: float, iteration: int) -> float:
        return self.param('a', iteration)

    @classmethod
    def from_history(cls, stock, nyears: Optional[int] = None,
                     geometric: bool = True, **kwargs) -> 'ConstantRecruitment':
        """Mean of the last `nyears` historical recruitments, per iteration.

        Args:
            stock: StockTimeline with observed numbers.
            nyears: Years to average (default: all historical years).
            geometric: Geometric (True) or arithmetic mean.
        """
        rec = stock.stock_n[0, :stock.n_hist, :]
        if nyears is not None:
            if nyears < 1 or nyears > rec.shape[0]:
                raise ValueError(
                    f"nyears must be in 1–{rec.shape[0]}, got {nyears}"
                )
            rec = rec[-nyears:]
        if geometric:
            if np.any(rec <= 0):
                raise ValueError("Geometric mean needs strictly positive recruitment")
            a = np.exp(np.mean(np.log(rec), axis=0))
        else:
            a = np.mean(rec, axis=0)
        return cls(a, **kwargs)


class GeometricMean(ConstantRecruitment):
    name = 'geomean'


class BevertonHolt(RecruitmentModel):
    """R = a·S / (b + S)."""

    name = 'bevholt'
    param_names = ('a', 'b')

    def __init__(self, a, b, residuals=None, residual_years=None):
        super().__init__({'a': a, 'b': b}, residuals, residual_years)

    def deterministic(self, srp: float, iteration: int) -> float:
        a = self.param('a', iteration)
        b = self.param('b', iteration)
        denom = b + srp
        return a * srp / denom if denom > 0 else 0.0


class Ricker(RecruitmentModel):
    """R = a·S·exp(−b·S)."""

    name = 'ricker'
    param_names = ('a', 'b')

    def __init__(self, a, b, residuals=None, residual_years=None):
        super().__init__({'a': a, 'b': b}, residuals, residual_years)

    def deterministic(self, srp: float, iteration: int) -> float:
        return self.param('a', iteration) * srp * np.exp(-self.param('b', iteration) * srp)


class CustomRecruitment(RecruitmentModel):
    """User-supplied functional form: func(srp, **params) -> recruits."""

    name = 'custom'

    def __init__(self, func: Callable[..., float], params: Dict[str, object],
                 residuals=None, residual_years=None):
        self.func = func
        super().__init__(params, residuals, residual_years)

    def deterministic(self, srp: float, iteration: int) -> float:
        kwargs = {k: self.param(k, iteration) for k in self.params}
        return float(self.func(srp, **kwargs))


_MODELS = {
    'mean': ConstantRecruitment,
    'constant': ConstantRecruitment,
    'geomean': GeometricMean,
    'bevholt': BevertonHolt,
    'ricker': Ricker,
}


def make_recruitment_model(name: str, params: Dict[str, object],
                           residuals=None, residual_years=None) -> RecruitmentModel:
    """Build a named model from a parameter dict (e.g. from YAML config).

    Raises:
        ConfigurationError: Unknown model name or missing parameters.
    """
    key = str(name).strip().lower()
    if key not in _MODELS:
        raise ConfigurationError(
            f"Unknown recruitment model '{name}'. Valid: {sorted(_MODELS)}"
        )
    cls = _MODELS[key]
    missing = [p for p in cls.param_names if p not in params]
    if missing:
        raise ConfigurationError(f"Recruitment model '{key}' needs parameters {missing}")
    kwargs = {p: params[p] for p in cls.param_names}
    return cls(**kwargs, residuals=residuals, residual_years=residual_years)
