"""Tests for stockfwd.config: configuration loading and validation."""

from pathlib import Path

import numpy as np
import pytest
import yaml

from stockfwd.assumptions import short_term_forecast
from stockfwd.config import (
    ForecastSection,
    ProjectionConfig,
    RecruitmentSection,
    SolverSection,
    control_from_config,
    deep_merge,
    default_config,
    load_config,
    recruitment_from_config,
    validate_config,
)
from stockfwd.datasets import example_stock
from stockfwd.errors import ConfigurationError
from stockfwd.recruitment import BevertonHolt, ConstantRecruitment, GeometricMean
from stockfwd.types import QuantityKind


def _write(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


# ── deep_merge tests ──────────────────────────────────────────────────

class TestDeepMerge:
    def test_simple_override(self):
        assert deep_merge({'a': 1, 'b': 2}, {'b': 3}) == {'a': 1, 'b': 3}

    def test_nested_merge(self):
        base = {'x': {'a': 1, 'b': 2}, 'y': 10}
        result = deep_merge(base, {'x': {'b': 3, 'c': 4}})
        assert result == {'x': {'a': 1, 'b': 3, 'c': 4}, 'y': 10}

    def test_lists_replaced(self):
        base = {'targets': [{'year': 2018}]}
        result = deep_merge(base, {'targets': [{'year': 2019}, {'year': 2020}]})
        assert len(result['targets']) == 2

    def test_empty_override(self):
        assert deep_merge({'a': 1}, {}) == {'a': 1}


# ── default_config tests ─────────────────────────────────────────────

class TestDefaultConfig:
    def test_creates_valid_config(self):
        assert isinstance(default_config(), ProjectionConfig)

    def test_default_values(self):
        config = default_config()
        assert config.forecast.n_years == 3
        assert config.forecast.seed == 42
        assert config.solver.max_multiplier == 1000.0
        assert config.solver.parallel_workers == 1
        assert config.recruitment.model == "mean"
        assert config.recruitment.residuals == "none"
        assert config.targets == []


# ── validate_config tests ────────────────────────────────────────────

class TestValidateConfig:
    @pytest.mark.parametrize("config", [
        ProjectionConfig(forecast=ForecastSection(n_years=0)),
        ProjectionConfig(forecast=ForecastSection(wts_nyears=0)),
        ProjectionConfig(forecast=ForecastSection(fbar_nyears=0)),
        ProjectionConfig(forecast=ForecastSection(seed=-1)),
        ProjectionConfig(solver=SolverSection(tolerance=0.0)),
        ProjectionConfig(solver=SolverSection(max_iterations=0)),
        ProjectionConfig(solver=SolverSection(max_multiplier=0.0)),
        ProjectionConfig(solver=SolverSection(parallel_workers=0)),
        ProjectionConfig(recruitment=RecruitmentSection(model="hockey")),
        ProjectionConfig(recruitment=RecruitmentSection(residuals="normal")),
        ProjectionConfig(recruitment=RecruitmentSection(sigma=-0.1)),
        ProjectionConfig(targets=["f 0.3"]),
    ])
    def test_rejects(self, config):
        with pytest.raises(ConfigurationError):
            validate_config(config)


# ── load_config tests ────────────────────────────────────────────────

class TestLoadConfig:
    def test_load_base(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {
            'forecast': {'n_years': 5},
            'recruitment': {'model': 'bevholt', 'params': {'a': 1.2e6, 'b': 1.0e5}},
            'targets': [{'year': 2018, 'quantity': 'f', 'value': 0.3}],
        })
        config = load_config(base)
        assert config.forecast.n_years == 5
        assert config.forecast.wts_nyears == 3
        assert config.recruitment.params['b'] == 1.0e5
        assert config.targets[0]['quantity'] == 'f'

    def test_empty_file(self, tmp_path):
        base = tmp_path / "base.yaml"
        base.write_text("")
        assert load_config(base).forecast.n_years == 3

    def test_scenario_and_overrides(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {'solver': {'max_multiplier': 100.0}})
        scenario = _write(tmp_path / "scenario.yaml", {
            'solver': {'parallel_workers': 4},
            'forecast': {'n_years': 10},
        })
        config = load_config(base, scenario, overrides={'forecast': {'n_years': 7}})
        assert config.solver.max_multiplier == 100.0
        assert config.solver.parallel_workers == 4
        assert config.forecast.n_years == 7

    def test_missing_base(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_scenario_warns(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {})
        with pytest.warns(UserWarning, match="does not exist"):
            config = load_config(base, tmp_path / "nope.yaml")
        assert config.forecast.n_years == 3

    def test_unknown_section_key(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {'solver': {'tol': 1e-6}})
        with pytest.raises(ConfigurationError, match="Unknown keys"):
            load_config(base)

    def test_unknown_top_level(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {'plots': {}})
        with pytest.raises(ConfigurationError, match="top-level"):
            load_config(base)

    def test_invalid_values(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {'solver': {'parallel_workers': 0}})
        with pytest.raises(ConfigurationError):
            load_config(base)

    def test_targets_must_be_list(self, tmp_path):
        base = _write(tmp_path / "base.yaml", {'targets': {'year': 2018}})
        with pytest.raises(ConfigurationError, match="list"):
            load_config(base)


# ── Building projection objects ───────────────────────────────────────

class TestBuilders:
    def test_control_from_config(self):
        config = ProjectionConfig(targets=[
            {'year': 2019, 'quantity': 'catch', 'value': 0.9, 'rel_year': 2018},
            {'year': 2018, 'quantity': 'f', 'value': 0.3},
        ])
        ctrl = control_from_config(config)
        assert [t.quantity for t in ctrl] == [QuantityKind.F, QuantityKind.CATCH]

    def test_control_needs_targets(self):
        with pytest.raises(ConfigurationError, match="no targets"):
            control_from_config(default_config())

    def test_named_model(self):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='bevholt', params={'a': 10.0, 'b': 2.0}))
        rec = recruitment_from_config(config)
        assert isinstance(rec, BevertonHolt)

    def test_mean_from_history(self, stock):
        config = ProjectionConfig(recruitment=RecruitmentSection(model='mean'))
        rec = recruitment_from_config(config, stock)
        assert type(rec) is ConstantRecruitment
        assert rec.param('a', 0) == pytest.approx(stock.stock_n[0, :, 0].mean())

    def test_geomean_with_nyears(self, stock):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='geomean', params={'nyears': 3}))
        rec = recruitment_from_config(config, stock)
        assert isinstance(rec, GeometricMean)
        expected = np.exp(np.log(stock.stock_n[0, -3:, 0]).mean())
        assert rec.param('a', 0) == pytest.approx(expected)

    def test_mean_without_stock(self):
        with pytest.raises(ConfigurationError, match="needs a stock"):
            recruitment_from_config(default_config())

    def test_lognormal_residuals(self, future):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='mean', params={'a': 1000.0}, residuals='lognormal', sigma=0.5))
        rec = recruitment_from_config(config, future)
        values = [rec.predict(0.0, y, 0) for y in (2018, 2019, 2020)]
        assert len(set(values)) == 3
        assert rec.predict(0.0, 2030, 0) == 1000.0

    def test_bootstrap_residuals(self, future):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='mean', params={'a': 1.0e6}, residuals='bootstrap'))
        rec = recruitment_from_config(config, future)
        hist = future.stock_n[0, 1:future.n_hist, 0] / 1.0e6
        for y in (2018, 2019, 2020):
            assert np.any(np.isclose(rec.residual(y, 0), hist))

    def test_bootstrap_pools_all_iterations(self):
        future = short_term_forecast(example_stock(n_iters=2, seed=3))
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='mean', params={'a': 1.0e6}, residuals='bootstrap'))
        years = list(range(2018, 2218))
        rec = recruitment_from_config(config, future, residual_years=years)
        own = future.stock_n[0, 1:future.n_hist, 0] / 1.0e6
        other = future.stock_n[0, 1:future.n_hist, 1] / 1.0e6
        drawn = np.array([rec.residual(y, 0) for y in years])
        assert np.any(np.isclose(drawn[:, None], other[None, :]).any(axis=1)
                      & ~np.isclose(drawn[:, None], own[None, :]).any(axis=1))

    def test_bootstrap_rejects_zero_prediction(self, future):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='ricker', params={'a': 1.0, 'b': 1.0e3}, residuals='bootstrap'))
        with pytest.raises(ConfigurationError, match="positive predictions"):
            recruitment_from_config(config, future)

    def test_residuals_need_years(self):
        config = ProjectionConfig(recruitment=RecruitmentSection(
            model='mean', params={'a': 1.0}, residuals='lognormal'))
        with pytest.raises(ConfigurationError):
            recruitment_from_config(config)
        rec = recruitment_from_config(config, residual_years=[2018])
        assert rec.residual(2018, 0) > 0
