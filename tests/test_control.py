"""Tests for stockfwd.control: target ordering, validation and planning."""

import numpy as np
import pytest

from stockfwd.assumptions import short_term_forecast
from stockfwd.control import ProjectionControl, Target
from stockfwd.datasets import example_stock
from stockfwd.errors import ConfigurationError
from stockfwd.types import BoundColumn, QuantityKind


def _spawning_fraction(stock, first_year, fraction):
    stock.harvest_spwn[:, stock.year_index(first_year):, :] = fraction


# ── Construction and ordering ─────────────────────────────────────────

class TestOrdering:
    def test_sorted_by_year(self):
        ctrl = ProjectionControl([
            Target(2020, 'f', 0.2),
            Target(2018, 'catch', 100.0),
            Target(2019, 'f', 0.3),
        ])
        assert [t.year for t in ctrl] == [2018, 2019, 2020]

    def test_bounds_after_values_within_year(self):
        ctrl = ProjectionControl([
            Target(2018, 'catch', max=50.0),
            Target(2018, 'f', 0.3),
            Target(2018, 'ssb', min=10.0),
        ])
        assert [t.quantity for t in ctrl] == [QuantityKind.F, QuantityKind.CATCH,
                                              QuantityKind.SSB_END]
        assert not ctrl.is_bound(0)
        assert ctrl.is_bound(1) and ctrl.is_bound(2)

    def test_insertion_order_kept_within_phase(self):
        ctrl = ProjectionControl([
            Target(2018, 'catch', max=50.0),
            Target(2018, 'f', min=0.1),
        ])
        assert [t.quantity for t in ctrl] == [QuantityKind.CATCH, QuantityKind.F]

    def test_iters_follow_sort(self):
        iters = np.full((2, 3, 2), np.nan)
        iters[0, BoundColumn.VALUE] = [0.4, 0.5]
        iters[1, BoundColumn.VALUE] = [0.1, 0.2]
        ctrl = ProjectionControl([Target(2019, 'f'), Target(2018, 'f')], iters=iters)
        assert ctrl[0].year == 2018
        assert ctrl.values(0, 1) == (None, 0.2, None)
        assert ctrl.values(1, 0) == (None, 0.4, None)

    def test_empty(self):
        with pytest.raises(ConfigurationError):
            ProjectionControl([])

    def test_bad_iters_shape(self):
        with pytest.raises(ConfigurationError, match="shape"):
            ProjectionControl([Target(2018, 'f', 0.1)], iters=np.ones((1, 2, 3)))

    def test_years(self):
        ctrl = ProjectionControl([Target(2019, 'f', 0.1), Target(2018, 'f', 0.1),
                                  Target(2019, 'catch', max=5.0)])
        assert ctrl.years == [2018, 2019]


class TestFromRecords:
    def test_builds(self):
        ctrl = ProjectionControl.from_records([
            {'year': 2018, 'quantity': 'f', 'value': 0.3},
            {'year': 2019, 'quantity': 'catch', 'value': 0.9, 'rel_year': 2018},
        ])
        assert len(ctrl) == 2
        assert ctrl[1].rel_year == 2018
        assert ctrl.values(1, 0) == (None, 0.9, None)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="unknown keys"):
            ProjectionControl.from_records([{'year': 2018, 'quantity': 'f', 'val': 0.3}])

    def test_missing_key(self):
        with pytest.raises(ConfigurationError, match="'year' and 'quantity'"):
            ProjectionControl.from_records([{'quantity': 'f', 'value': 0.3}])

    def test_unknown_quantity(self):
        with pytest.raises(ConfigurationError, match="Unknown quantity"):
            ProjectionControl.from_records([{'year': 2018, 'quantity': 'x', 'value': 1}])


class TestIterValues:
    def test_single_iteration_broadcasts(self):
        ctrl = ProjectionControl([Target(2018, 'f', 0.3)])
        assert ctrl.n_iters == 1
        assert ctrl.values(0, 7) == (None, 0.3, None)

    def test_set_iter_values_grows(self):
        ctrl = ProjectionControl([Target(2018, 'f', 0.3), Target(2019, 'f', 0.2)])
        ctrl.set_iter_values(0, BoundColumn.VALUE, [0.1, 0.2, 0.3])
        assert ctrl.n_iters == 3
        assert ctrl.values(0, 2) == (None, 0.3, None)
        assert ctrl.values(1, 2) == (None, 0.2, None)

    def test_set_iter_values_wrong_length(self):
        ctrl = ProjectionControl([Target(2018, 'f', 0.3)])
        ctrl.set_iter_values(0, BoundColumn.VALUE, [0.1, 0.2])
        with pytest.raises(ConfigurationError):
            ctrl.set_iter_values(0, BoundColumn.VALUE, [0.1, 0.2, 0.3])


# ── Validation ────────────────────────────────────────────────────────

class TestValidate:
    def test_valid(self, future):
        ProjectionControl([Target(2018, 'f', 0.3), Target(2019, 'catch', max=1e5),
                           Target(2020, 'ssb', 1.0, rel_year=2019)]).validate(future)

    def test_no_projection_years(self, stock):
        with pytest.raises(ConfigurationError, match="extend"):
            ProjectionControl([Target(2017, 'f', 0.3)]).validate(stock)

    @pytest.mark.parametrize("year", [2017, 2021])
    def test_year_outside_window(self, future, year):
        with pytest.raises(ConfigurationError, match="projection window"):
            ProjectionControl([Target(year, 'f', 0.3)]).validate(future)

    def test_no_value_or_bound(self, future):
        with pytest.raises(ConfigurationError, match="needs a value"):
            ProjectionControl([Target(2018, 'f')]).validate(future)

    def test_value_and_bound_on_one_record(self, future):
        with pytest.raises(ConfigurationError, match="separate target"):
            ProjectionControl([Target(2018, 'f', 0.3, max=0.5)]).validate(future)

    def test_negative(self, future):
        with pytest.raises(ConfigurationError, match="non-negative"):
            ProjectionControl([Target(2018, 'catch', -1.0)]).validate(future)

    def test_min_above_max(self, future):
        with pytest.raises(ConfigurationError, match="min exceeds max"):
            ProjectionControl([Target(2018, 'f', min=0.5, max=0.2)]).validate(future)

    def test_rel_year_not_before(self, future):
        with pytest.raises(ConfigurationError, match="rel_year"):
            ProjectionControl([Target(2019, 'catch', 1.0, rel_year=2019)]).validate(future)

    def test_rel_year_outside_timeline(self, future):
        with pytest.raises(ConfigurationError, match="outside the timeline"):
            ProjectionControl([Target(2019, 'catch', 1.0, rel_year=1900)]).validate(future)

    def test_rel_year_may_be_historical(self, future):
        ProjectionControl([Target(2018, 'catch', 1.0, rel_year=2017)]).validate(future)

    def test_two_values_same_year(self, future):
        with pytest.raises(ConfigurationError, match="already has value target"):
            ProjectionControl([Target(2018, 'f', 0.3),
                               Target(2018, 'catch', 100.0)]).validate(future)

    def test_value_plus_deferred_same_year_allowed(self, future):
        _spawning_fraction(future, 2019, 0.5)
        ProjectionControl([Target(2018, 'f', 0.3),
                           Target(2018, 'ssb_spawn', 100.0)]).validate(future)

    def test_partial_iteration_column(self):
        future = short_term_forecast(example_stock(n_iters=2))
        iters = np.array([[[np.nan], [0.3], [np.nan]]])
        iters = np.concatenate([iters, iters], axis=2)
        iters[0, BoundColumn.MAX, 0] = 1.0
        ctrl = ProjectionControl([Target(2018, 'f')], iters=iters)
        with pytest.raises(ConfigurationError):
            ctrl.validate(future)

    def test_iteration_mismatch(self, future):
        ctrl = ProjectionControl([Target(2018, 'f', 0.3)])
        ctrl.set_iter_values(0, BoundColumn.VALUE, [0.1, 0.2])
        with pytest.raises(ConfigurationError, match="iterations"):
            ctrl.validate(future)


# ── Planning ──────────────────────────────────────────────────────────

class TestPlan:
    def test_every_projection_year_planned(self, future):
        plans, messages = ProjectionControl([Target(2019, 'f', 0.3)]).plan(future, 0)
        assert sorted(plans) == [2018, 2019, 2020]
        assert plans[2018].primary is None
        assert plans[2019].primary.quantity == QuantityKind.F
        assert messages == []

    def test_bounds_placed_on_their_year(self, future):
        plans, _ = ProjectionControl([Target(2018, 'f', 0.3),
                                      Target(2018, 'catch', max=10.0)]).plan(future, 0)
        assert [b.index for b in plans[2018].bounds] == [1]

    def test_spawning_target_with_early_fishing_not_deferred(self, future):
        _spawning_fraction(future, 2018, 0.5)
        plans, _ = ProjectionControl([Target(2018, 'ssb_spawn', 10.0)]).plan(future, 0)
        assert plans[2018].primary is not None
        assert not plans[2018].primary.deferred

    def test_spawning_target_deferred(self, future):
        _spawning_fraction(future, 2019, 0.5)
        plans, messages = ProjectionControl([Target(2018, 'srp', 10.0)]).plan(future, 0)
        assert plans[2018].primary is None
        entry = plans[2019].primary
        assert entry.deferred
        assert entry.year == 2019 and entry.target.year == 2018
        assert messages == []

    def test_deferred_bound(self, future):
        _spawning_fraction(future, 2019, 0.5)
        plans, _ = ProjectionControl([Target(2018, 'ssb_spawn', min=10.0)]).plan(future, 0)
        assert plans[2019].bounds[0].deferred

    def test_deferred_conflict_prefers_explicit(self, future):
        _spawning_fraction(future, 2019, 0.5)
        ctrl = ProjectionControl([Target(2018, 'ssb_spawn', 10.0), Target(2019, 'f', 0.2)])
        plans, messages = ctrl.plan(future, 0)
        assert plans[2019].primary.quantity == QuantityKind.F
        assert len(messages) == 1
        assert "conflicts" in messages[0]

    def test_last_year_not_actionable(self, future):
        plans, _ = ProjectionControl([Target(2020, 'ssb_spawn', 10.0)]).plan(future, 0)
        blocked = plans[2020].blocked
        assert len(blocked) == 1
        assert not blocked[0].actionable
        assert "last year" in blocked[0].reason

    def test_no_fishing_before_spawning_either_year(self, future):
        plans, _ = ProjectionControl([Target(2018, 'biomass_spawn', 10.0)]).plan(future, 0)
        assert plans[2018].blocked[0].year == 2018
        assert "2018 or 2019" in plans[2018].blocked[0].reason

    def test_flash_last_year_not_actionable(self, future):
        plans, _ = ProjectionControl([Target(2020, 'ssb_flash', 10.0)]).plan(future, 0)
        assert plans[2020].blocked

    def test_flash_earlier_year_actionable(self, future):
        plans, _ = ProjectionControl([Target(2019, 'ssb_flash', 10.0)]).plan(future, 0)
        assert plans[2019].primary is not None

    def test_repr_lists_targets(self):
        text = repr(ProjectionControl([Target(2018, 'f', 0.3)]))
        assert "1 targets" in text
        assert "F" in text
