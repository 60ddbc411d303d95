from orchestration.tasks.snapshots import find_running_tests, snapshot_test, summarize_results

__all__ = [
    "find_running_tests",
    "snapshot_test",
    "summarize_results",
]
