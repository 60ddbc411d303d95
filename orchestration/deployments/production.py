from app.config import get_settings
from orchestration.flows.ab_test_snapshots import ab_test_snapshot_pipeline

settings = get_settings()


if __name__ == "__main__":
    # Blocks, running the flow on schedule until interrupted
    ab_test_snapshot_pipeline.serve(
        name="ab-test-snapshots-scheduled",
        cron=settings.AB_SNAPSHOT_CRON,
        tags=["production", "scheduled", "ab-testing"],
    )
