"""
Unit tests for LevelCurve, CategoryAggregator and the progression formulas.

Tests level boundaries, the progress range, curve monotonicity, order
independence of the overall level, and the XP multiplier / daily cap math.
"""

import math

import pytest

from evolvr.core.config.manager import ConfigManager
from evolvr.core.exceptions import ConfigurationError
from evolvr.domain.models import CategoryProgress, LevelInfo
from evolvr.modules.progression.aggregator import CategoryAggregator
from evolvr.modules.progression.level_curve import LevelCurve
from evolvr.modules.shared import formulas
from evolvr.modules.shared.exceptions import ValidationError


@pytest.fixture
def curve():
    return LevelCurve(xp_per_level=1000, max_level=100)


@pytest.fixture
def aggregator(curve):
    return CategoryAggregator(curve)


@pytest.mark.unit
class TestLevelCurve:
    def test_zero_xp_is_level_one(self, curve):
        """A fresh user starts at level 1 with no progress."""
        assert curve.level_info(0) == LevelInfo(1, 0, 1000, 0.0)

    def test_boundary_belongs_to_new_level(self, curve):
        """XP exactly at a threshold rounds up to the next level."""
        info = curve.level_info(1000)

        assert info.level == 2
        assert info.current_level_xp == 0
        assert info.progress == 0.0

    def test_mid_level_progress(self, curve):
        assert curve.level_info(2500) == LevelInfo(3, 500, 1000, 0.5)
        assert curve.level_info(2500).xp_remaining == 500

    def test_progress_stays_in_range(self, curve):
        for xp in (0, 1, 999, 1000, 1001, 54321.5, 99_000, 10**9):
            assert 0.0 <= curve.level_info(xp).progress <= 1.0

    def test_level_is_capped(self, curve):
        info = curve.level_info(10**9)

        assert info.level == 100
        assert info.progress == 1.0
        assert curve.is_max_level(info.level)

    def test_xp_for_next_level_is_monotonic(self, curve):
        requirements = [curve.xp_for_next_level(level) for level in range(1, 101)]

        assert requirements[0] == 1000
        assert all(b >= a for a, b in zip(requirements, requirements[1:]))

    def test_same_xp_same_result(self, curve):
        assert curve.level_info(4321) == curve.level_info(4321)

    @pytest.mark.parametrize("xp", [-1, float("nan"), float("inf"), "100", None])
    def test_invalid_xp_is_rejected(self, curve, xp):
        with pytest.raises(ValidationError):
            curve.level_info(xp)

    @pytest.mark.parametrize("level", [0, -2, 1.5])
    def test_invalid_level_is_rejected(self, curve, level):
        with pytest.raises(ValidationError):
            curve.xp_for_next_level(level)

    @pytest.mark.parametrize("xp_per_level, max_level", [(0, 100), (-5, 100), (1000, 0), (10.5, 100)])
    def test_invalid_parameters_raise_configuration_error(self, xp_per_level, max_level):
        with pytest.raises(ConfigurationError):
            LevelCurve(xp_per_level=xp_per_level, max_level=max_level)

    def test_from_config_reads_overrides(self):
        ConfigManager.set_override("progression.xp_per_level", 500)
        ConfigManager.set_override("progression.max_level", 10)

        curve = LevelCurve.from_config()

        assert curve == LevelCurve(xp_per_level=500, max_level=10)
        assert curve.level_of(1500) == 4
        assert curve.level_of(100_000) == 10

    def test_from_config_defaults(self):
        assert LevelCurve.from_config() == LevelCurve()


@pytest.mark.unit
class TestCategoryAggregator:
    def test_empty_map_is_level_one(self, aggregator):
        info = aggregator.overall_level_info({})

        assert info.level == 1
        assert info.progress == 0.0
        assert info.total_xp == 0

    def test_overall_level_is_mean_of_categories(self, aggregator):
        categories = {
            "physical": CategoryProgress(level=3, xp=2000),
            "mental": CategoryProgress(level=5, xp=4000),
        }

        info = aggregator.overall_level_info(categories)

        assert info.total_xp == 3000
        assert info.level == 4
        assert info.progress == 0.0

    def test_order_independent(self, aggregator):
        values = [("physical", 1234.5), ("mental", 0.1), ("career", 98765.4), ("spiritual", 0.2)]
        forward = {name: CategoryProgress(xp=xp) for name, xp in values}
        backward = {name: CategoryProgress(xp=xp) for name, xp in reversed(values)}

        assert aggregator.overall_level_info(forward) == aggregator.overall_level_info(backward)

    def test_mean_is_floored(self, aggregator):
        categories = {"a": CategoryProgress(xp=1), "b": CategoryProgress(xp=2)}

        assert aggregator.aggregate_xp(categories) == 1

    def test_category_progress_is_independent(self, aggregator):
        assert aggregator.category_level_progress(1500, 2) == pytest.approx(0.5)
        assert aggregator.category_level_progress(0, 1) == 0.0

    def test_category_progress_is_clamped_for_stale_level(self, aggregator):
        """A stored level behind its XP still reports at most full progress."""
        assert aggregator.category_level_progress(5000, 2) == 1.0

    def test_overall_progress_carries_prestige(self, aggregator):
        categories = {"mental": CategoryProgress(level=2, xp=1750)}

        overall = aggregator.overall_progress(categories, prestige=2)

        assert (overall.level, overall.xp, overall.prestige) == (2, 750, 2)

    def test_level_ups(self):
        before = {"mental": CategoryProgress(level=1, xp=900), "physical": CategoryProgress(level=2, xp=1100)}
        after = {
            "mental": CategoryProgress(level=2, xp=1000),
            "physical": CategoryProgress(level=2, xp=1200),
            "career": CategoryProgress(level=3, xp=2000),
        }

        assert CategoryAggregator.level_ups(before, after) == ["mental", "career"]


@pytest.mark.unit
class TestFormulas:
    def test_clamp_progress(self):
        assert formulas.clamp_progress(1.4) == 1.0
        assert formulas.clamp_progress(-0.2) == 0.0
        assert formulas.clamp_progress(math.nan) == 0.0

    def test_streak_bonus_is_capped(self):
        assert formulas.streak_bonus(0, 0.01, 0.10) == 0.0
        assert formulas.streak_bonus(3, 0.01, 0.10) == pytest.approx(0.03)
        assert formulas.streak_bonus(40, 0.01, 0.10) == 0.10

    def test_prestige_multiplier(self):
        assert formulas.prestige_multiplier(0, 0.03) == 1.0
        assert formulas.prestige_multiplier(2, 0.03) == pytest.approx(1.06)

    def test_apply_multiplier_floors_without_float_loss(self):
        assert formulas.apply_multiplier({"mental": 100, "physical": 55}, 1.15) == {
            "mental": 115,
            "physical": 63,
        }

    def test_daily_cap_scales_proportionally(self):
        capped = formulas.apply_daily_cap({"mental": 300, "physical": 100}, today_xp=1800, daily_limit=2000)

        assert capped == {"mental": 150, "physical": 50}

    def test_daily_cap_passes_small_awards_through(self):
        assert formulas.apply_daily_cap({"mental": 100}, today_xp=0, daily_limit=2000) == {"mental": 100}

    def test_daily_cap_exhausted(self):
        assert formulas.apply_daily_cap({"mental": 300}, today_xp=2500, daily_limit=2000) == {"mental": 0}

    def test_capped_total_never_exceeds_allowance(self):
        capped = formulas.apply_daily_cap({"a": 333, "b": 333, "c": 334}, today_xp=1900, daily_limit=2000)

        assert sum(capped.values()) <= 100
