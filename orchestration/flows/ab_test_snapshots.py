import asyncio
from typing import List, Optional

from prefect import flow, get_run_logger

from orchestration.tasks.snapshots import find_running_tests, snapshot_test


@flow(name="ab_test_snapshot_pipeline", log_prints=True)
async def ab_test_snapshot_pipeline(test_ids: Optional[List[str]] = None) -> dict:
    logger = get_run_logger()

    if test_ids is None:
        test_ids = await find_running_tests()

    logger.info(f"Snapshotting {len(test_ids)} A/B tests")

    reports = []
    failures = {}
    for test_id in test_ids:
        try:
            reports.append(await snapshot_test(test_id))
        except Exception as e:
            # Keep scoring the remaining tests
            logger.error(f"Failed to snapshot {test_id}: {e}")
            failures[test_id] = str(e)

    logger.info(f"Snapshotted {len(reports)}/{len(test_ids)} tests")

    return {"tests_processed": len(reports), "reports": reports, "failures": failures}


if __name__ == "__main__":
    asyncio.run(ab_test_snapshot_pipeline())
