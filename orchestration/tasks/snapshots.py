from datetime import datetime, timezone
from typing import List

from prefect import task
from prefect.logging import get_run_logger

from app.core.database import async_session_maker
from app.models.schemas import TestResultsResponse
from app.services.ab_testing import ABTestingService


@task
async def find_running_tests() -> List[str]:
    logger = get_run_logger()

    async with async_session_maker() as session:
        test_ids = await ABTestingService(session).list_running_test_ids()

    logger.info(f"Found {len(test_ids)} running tests")
    return test_ids


@task(retries=2, retry_delay_seconds=10)
async def snapshot_test(test_id: str) -> dict:
    logger = get_run_logger()

    async with async_session_maker() as session:
        results = await ABTestingService(session).calculate_results(test_id)

    report = summarize_results(results)
    for variant_id, line in report["summary"].items():
        logger.info(f"{results.test.test_name} / {variant_id}: {line}")

    return report


def summarize_results(results: TestResultsResponse) -> dict:
    """Build a plain-dict report of one scoring pass, one summary line per challenger."""
    report = {
        "test_id": results.test.id,
        "test_name": results.test.test_name,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "statistical_confidence": results.test.statistical_confidence,
        "variants": {
            v.id: {
                "variant_type": v.variant_type.value,
                "impressions": v.impressions,
                "conversions": v.conversions,
                "conversion_rate": v.calculated_conversion_rate,
                "average_order_value": v.average_order_value,
            }
            for v in results.variants
        },
        "summary": {},
    }

    rates = {v.id: v.calculated_conversion_rate for v in results.variants}
    control_rate = next(
        (v.calculated_conversion_rate for v in results.variants if v.variant_type == "control"),
        None,
    )

    for s in results.significance:
        rate = rates.get(s.variant_id, 0.0)
        if not s.is_significant or control_rate is None:
            report["summary"][s.variant_id] = (
                f"Inconclusive: {rate:.2f}% conversion (confidence {s.confidence:.1f}%)"
            )
        elif rate > control_rate:
            report["summary"][s.variant_id] = (
                f"Winner: {rate:.2f}% vs {control_rate:.2f}% control (z={s.z_score:.2f})"
            )
        else:
            report["summary"][s.variant_id] = (
                f"Loser: {rate:.2f}% vs {control_rate:.2f}% control (z={s.z_score:.2f})"
            )

    return report
