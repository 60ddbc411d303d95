import math

import pytest

from app.services.ab_testing.stats import (
    MAX_CONFIDENCE,
    VariantCounts,
    calculate_average_order_value,
    calculate_conversion_rate,
    calculate_pooled_proportion,
    calculate_z_score,
    compare_to_control,
    score_variants,
    z_score_to_confidence,
    z_score_to_p_value,
)


def _control(impressions, conversions):
    return VariantCounts(
        "control", impressions=impressions, conversions=conversions, is_control=True
    )


def _challenger(impressions, conversions, variant_id="variant_a"):
    return VariantCounts(variant_id, impressions=impressions, conversions=conversions)


class TestConversionRate:
    def test_basic_conversion_rate(self):
        assert calculate_conversion_rate(25, 100) == 25.0

    def test_zero_impressions(self):
        assert calculate_conversion_rate(0, 0) == 0.0

    def test_conversions_without_impressions(self):
        assert calculate_conversion_rate(3, 0) == 0.0


class TestAverageOrderValue:
    def test_basic(self):
        assert calculate_average_order_value(150.0, 3) == pytest.approx(50.0)

    def test_zero_conversions(self):
        assert calculate_average_order_value(99.0, 0) == 0.0


class TestZScore:
    def test_regression_case(self):
        control = _control(1000, 100)
        variant = _challenger(1000, 150)

        assert calculate_pooled_proportion(control, variant) == pytest.approx(0.125)
        expected = 0.05 / math.sqrt(0.125 * 0.875 * (1 / 1000 + 1 / 1000))
        assert calculate_z_score(control, variant) == pytest.approx(expected)
        assert calculate_z_score(control, variant) > 1.96

    def test_absolute_value(self):
        better = calculate_z_score(_control(500, 100), _challenger(500, 150))
        worse = calculate_z_score(_control(500, 150), _challenger(500, 100))

        assert better == pytest.approx(worse)
        assert better > 0

    def test_zero_standard_error(self):
        # No conversions anywhere: pooled proportion is 0
        assert calculate_z_score(_control(100, 0), _challenger(100, 0)) == 0.0

    def test_all_converted(self):
        assert calculate_z_score(_control(100, 100), _challenger(100, 100)) == 0.0


class TestConfidence:
    def test_zero_z(self):
        assert z_score_to_confidence(0.0) == 0.0

    def test_formula(self):
        assert z_score_to_confidence(1.0) == pytest.approx((1 - math.exp(-1)) * 100)

    def test_capped(self):
        assert z_score_to_confidence(50.0) == MAX_CONFIDENCE

    def test_p_value(self):
        assert z_score_to_p_value(1.96) == pytest.approx(0.05, abs=0.001)
        assert z_score_to_p_value(0.0) == pytest.approx(1.0)


class TestCompareToControl:
    def test_significant(self):
        result = compare_to_control(_control(1000, 100), _challenger(1000, 150))

        assert result.variant_id == "variant_a"
        assert result.is_significant is True
        assert result.p_value < 0.05
        assert result.confidence == pytest.approx(z_score_to_confidence(result.z_score))

    def test_not_significant(self):
        result = compare_to_control(_control(100, 25), _challenger(100, 26))

        assert result.is_significant is False
        assert 0 < result.confidence < MAX_CONFIDENCE

    def test_control_without_impressions(self):
        result = compare_to_control(_control(0, 0), _challenger(100, 20))

        assert result.is_significant is False
        assert result.confidence == 0.0
        assert result.p_value is None

    def test_variant_without_impressions(self):
        result = compare_to_control(_control(100, 20), _challenger(0, 0))

        assert result.is_significant is False
        assert result.confidence == 0.0

    def test_missing_control(self):
        result = compare_to_control(None, _challenger(100, 20))

        assert result.is_significant is False
        assert result.confidence == 0.0


class TestScoreVariants:
    def test_one_entry_per_challenger(self):
        variants = [
            _control(1000, 100),
            _challenger(1000, 150, "variant_a"),
            _challenger(1000, 105, "variant_b"),
        ]

        results = score_variants(variants)

        assert [r.variant_id for r in results] == ["variant_a", "variant_b"]
        assert results[0].is_significant is True
        assert results[1].is_significant is False

    def test_no_control(self):
        results = score_variants([_challenger(10, 1, "variant_a"), _challenger(10, 2, "variant_b")])

        assert all(not r.is_significant and r.confidence == 0 for r in results)
