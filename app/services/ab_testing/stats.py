import math
from dataclasses import dataclass
from typing import List, Optional

from scipy import stats as scipy_stats

# Two-tailed 95% confidence
SIGNIFICANCE_Z_THRESHOLD = 1.96
MAX_CONFIDENCE = 99.9


@dataclass
class VariantCounts:
    id: str
    impressions: int
    conversions: int
    revenue: float = 0.0
    is_control: bool = False


@dataclass
class SignificanceResult:
    variant_id: str
    is_significant: bool
    confidence: float
    z_score: float = 0.0
    p_value: Optional[float] = None


def calculate_conversion_rate(conversions: int, impressions: int) -> float:
    if impressions == 0:
        return 0.0
    return conversions / impressions * 100


def calculate_average_order_value(revenue: float, conversions: int) -> float:
    if conversions == 0:
        return 0.0
    return revenue / conversions


def calculate_pooled_proportion(control: VariantCounts, variant: VariantCounts) -> float:
    total_impressions = control.impressions + variant.impressions
    if total_impressions == 0:
        return 0.0
    return (control.conversions + variant.conversions) / total_impressions


def calculate_z_score(control: VariantCounts, variant: VariantCounts) -> float:
    """Absolute pooled two-proportion z-score; 0 when the standard error vanishes."""
    p1 = control.conversions / control.impressions
    p2 = variant.conversions / variant.impressions
    pooled = calculate_pooled_proportion(control, variant)

    se = math.sqrt(
        pooled * (1 - pooled) * (1 / control.impressions + 1 / variant.impressions)
    )
    if se == 0:
        return 0.0

    return abs(p2 - p1) / se


def z_score_to_confidence(z_score: float) -> float:
    # Heuristic mapping kept for compatibility with stored results, not a p-value inversion
    return min(MAX_CONFIDENCE, (1 - math.exp(-z_score)) * 100)


def z_score_to_p_value(z_score: float) -> float:
    return float(2 * (1 - scipy_stats.norm.cdf(abs(z_score))))


def compare_to_control(
    control: Optional[VariantCounts], variant: VariantCounts
) -> SignificanceResult:
    if control is None or control.impressions == 0 or variant.impressions == 0:
        return SignificanceResult(variant_id=variant.id, is_significant=False, confidence=0.0)

    z_score = calculate_z_score(control, variant)

    return SignificanceResult(
        variant_id=variant.id,
        is_significant=z_score > SIGNIFICANCE_Z_THRESHOLD,
        confidence=z_score_to_confidence(z_score),
        z_score=z_score,
        p_value=z_score_to_p_value(z_score),
    )


def score_variants(variants: List[VariantCounts]) -> List[SignificanceResult]:
    """Compare every non-control variant against the control, in input order."""
    control = next((v for v in variants if v.is_control), None)
    return [compare_to_control(control, v) for v in variants if not v.is_control]
