"""
A/B testing service module.

This module provides:
- Test and variant storage with lifecycle transitions
- Weighted random variant allocation
- Event recording with atomic counter updates
- Conversion scoring and significance against the control variant
"""

from app.services.ab_testing.allocator import draw_traffic_point, pick_weighted_variant
from app.services.ab_testing.exceptions import (
    ABTestingError,
    StorageError,
    TestNotFoundError,
    VariantNotFoundError,
)
from app.services.ab_testing.service import ABTestingService
from app.services.ab_testing.stats import (
    calculate_average_order_value,
    calculate_conversion_rate,
    calculate_z_score,
    compare_to_control,
    score_variants,
    z_score_to_confidence,
)

__all__ = [
    "ABTestingService",
    "ABTestingError",
    "StorageError",
    "TestNotFoundError",
    "VariantNotFoundError",
    "pick_weighted_variant",
    "draw_traffic_point",
    "calculate_conversion_rate",
    "calculate_average_order_value",
    "calculate_z_score",
    "compare_to_control",
    "score_variants",
    "z_score_to_confidence",
]
