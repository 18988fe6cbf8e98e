"""Configuration system for stockfwd.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → in-memory overrides

Top-level keys map 1:1 to the dataclass sections below, plus a `targets`
list of projection control records:

    forecast:
      n_years: 3
      wts_nyears: 3
    solver:
      max_multiplier: 1000.0
    recruitment:
      model: bevholt
      params: {a: 1200.0, b: 400.0}
    targets:
      - {year: 2018, quantity: f, value: 0.3}
      - {year: 2019, quantity: catch, value: 0.9, rel_year: 2018}
"""

from __future__ import annotations

import dataclasses
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from stockfwd.errors import ConfigurationError


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ForecastSection:
    """Projection horizon and future-assumption averaging."""
    n_years: int = 3                      # Years appended to the stock
    wts_nyears: int = 3                   # Years averaged for biology slots
    fbar_nyears: Optional[int] = None     # Years averaged for F pattern (None = wts_nyears)
    seed: int = 42                        # Master seed for residual sampling


@dataclass
class SolverSection:
    """Root finding and execution."""
    tolerance: float = 1e-10        # Absolute tolerance on the F multiplier
    max_iterations: int = 100       # Root-find iteration budget per target
    max_multiplier: float = 1000.0  # Bracket ceiling for the F multiplier
    parallel_workers: int = 1       # 1 = serial; >1 = threads across iterations


@dataclass
class RecruitmentSection:
    """Stock-recruitment model and residuals.

    residuals: "none": deterministic recruitment
               "lognormal": mean-one lognormal with sd `sigma`
               "bootstrap": resample historical residuals
    """
    model: str = "mean"
    params: Dict[str, Any] = field(default_factory=dict)
    residuals: str = "none"
    sigma: float = 0.3


@dataclass
class ProjectionConfig:
    """Complete projection configuration.

    Load from YAML via `load_config()`.
    """
    forecast: ForecastSection = field(default_factory=ForecastSection)
    solver: SolverSection = field(default_factory=SolverSection)
    recruitment: RecruitmentSection = field(default_factory=RecruitmentSection)
    targets: List[Dict[str, Any]] = field(default_factory=list)


_SECTIONS = {
    'forecast': ForecastSection,
    'solver': SolverSection,
    'recruitment': RecruitmentSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values (including lists such as `targets`) are replaced
    - Keys in override but not base are added
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, rejecting unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    unknown = set(data) - valid_fields
    if unknown:
        raise ConfigurationError(
            f"Unknown keys for {section_cls.__name__}: {sorted(unknown)}"
        )
    return section_cls(**data)


def _yaml_to_config(data: Dict) -> ProjectionConfig:
    unknown = set(data) - set(_SECTIONS) - {'targets'}
    if unknown:
        raise ConfigurationError(f"Unknown top-level config keys: {sorted(unknown)}")
    sections = {}
    for key, cls in _SECTIONS.items():
        value = data.get(key)
        if value is None:
            sections[key] = cls()
        elif isinstance(value, dict):
            sections[key] = _dict_to_section(cls, value)
        else:
            raise ConfigurationError(f"Config section '{key}' must be a mapping")
    targets = data.get('targets') or []
    if not isinstance(targets, list):
        raise ConfigurationError("'targets' must be a list of records")
    sections['targets'] = [dict(t) if isinstance(t, dict) else t for t in targets]
    return ProjectionConfig(**sections)


def validate_config(config: ProjectionConfig) -> None:
    """Validate configuration constraints. Raises ConfigurationError on failure."""
    fc = config.forecast
    if fc.n_years < 1:
        raise ConfigurationError(f"forecast.n_years must be >= 1, got {fc.n_years}")
    if fc.wts_nyears < 1:
        raise ConfigurationError(f"forecast.wts_nyears must be >= 1, got {fc.wts_nyears}")
    if fc.fbar_nyears is not None and fc.fbar_nyears < 1:
        raise ConfigurationError(
            f"forecast.fbar_nyears must be >= 1, got {fc.fbar_nyears}"
        )
    if fc.seed < 0:
        raise ConfigurationError("forecast.seed must be non-negative")

    sv = config.solver
    if sv.tolerance <= 0:
        raise ConfigurationError(f"solver.tolerance must be positive, got {sv.tolerance}")
    if sv.max_iterations < 1:
        raise ConfigurationError(
            f"solver.max_iterations must be >= 1, got {sv.max_iterations}"
        )
    if sv.max_multiplier <= 0:
        raise ConfigurationError(
            f"solver.max_multiplier must be positive, got {sv.max_multiplier}"
        )
    if sv.parallel_workers < 1:
        raise ConfigurationError(
            f"solver.parallel_workers must be >= 1, got {sv.parallel_workers}"
        )

    rc = config.recruitment
    valid_models = {"mean", "constant", "geomean", "bevholt", "ricker"}
    if rc.model not in valid_models:
        raise ConfigurationError(
            f"recruitment.model must be one of {valid_models}, got '{rc.model}'"
        )
    valid_residuals = {"none", "lognormal", "bootstrap"}
    if rc.residuals not in valid_residuals:
        raise ConfigurationError(
            f"recruitment.residuals must be one of {valid_residuals}, "
            f"got '{rc.residuals}'"
        )
    if rc.sigma < 0:
        raise ConfigurationError(f"recruitment.sigma must be >= 0, got {rc.sigma}")

    for i, rec in enumerate(config.targets):
        if not isinstance(rec, dict):
            raise ConfigurationError(f"targets[{i}] must be a mapping")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> ProjectionConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides. A missing scenario file is
    skipped with a warning.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        if os.path.exists(scenario_path):
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)
        else:
            warnings.warn(
                f"Scenario file '{scenario_path}' does not exist; using base config.",
                UserWarning,
                stacklevel=2,
            )

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> ProjectionConfig:
    """Return a ProjectionConfig with all default values."""
    config = ProjectionConfig()
    validate_config(config)
    return config


def control_from_config(config: ProjectionConfig, iters=None):
    """Build a ProjectionControl from the config's `targets` records."""
    from stockfwd.control import ProjectionControl

    if not config.targets:
        raise ConfigurationError("Config has no targets")
    return ProjectionControl.from_records(config.targets, iters)


def recruitment_from_config(config: ProjectionConfig, stock=None, residual_years=None):
    """Build the configured recruitment model, with residuals if requested.

    `stock` is required for 'mean'/'geomean' models without an 'a' parameter
    (estimated from historical recruitment) and for bootstrap residuals.
    """
    import numpy as np

    from stockfwd.recruitment import ConstantRecruitment, GeometricMean, make_recruitment_model
    from stockfwd.residuals import lognormal_residuals, sample_residuals

    rc = config.recruitment
    if rc.model in ("mean", "constant", "geomean") and 'a' not in rc.params:
        if stock is None:
            raise ConfigurationError(
                f"recruitment.model '{rc.model}' without params.a needs a stock"
            )
        cls = GeometricMean if rc.model == "geomean" else ConstantRecruitment
        model = cls.from_history(stock, rc.params.get('nyears'),
                                 geometric=rc.model == "geomean")
    else:
        model = make_recruitment_model(rc.model, rc.params)

    if rc.residuals == "none":
        return model
    if residual_years is None:
        if stock is None:
            raise ConfigurationError("Residuals need a stock or residual_years")
        residual_years = stock.projection_years
    n_iters = stock.n_iters if stock is not None else 1
    seed = config.forecast.seed
    if rc.residuals == "lognormal":
        res = lognormal_residuals(rc.sigma, residual_years, n_iters, seed)
    else:
        if stock is None:
            raise ConfigurationError("Bootstrap residuals need a stock")
        # Residuals of every iteration's history share one pool
        hist = stock.historical_years[:-1]
        pool = []
        for it in range(n_iters):
            rec = stock.stock_n[0, 1:stock.n_hist, it]
            pred = np.array([model.deterministic(stock.srp(y, it), it) for y in hist])
            for y, r, p in zip(hist, rec, pred):
                if not (p > 0 and np.isfinite(p)):
                    raise ConfigurationError(
                        f"recruitment.model '{rc.model}' predicts {p:.6g} recruits from "
                        f"the {y} SRP (iteration {it}); bootstrap residuals need "
                        f"positive predictions"
                    )
                if not (r > 0 and np.isfinite(r)):
                    raise ConfigurationError(
                        f"Recruitment in {y + 1} (iteration {it}) is {r:.6g}; "
                        f"bootstrap residuals need positive observations"
                    )
            pool.append(rec / pred)
        res = sample_residuals(np.concatenate(pool), residual_years, n_iters, seed)
    return model.with_residuals(res)
