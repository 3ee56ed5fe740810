#!/usr/bin/env python3
"""
Display statistics for stored jobs.

This script reads every job in the configured store and shows:
- Status and item counts per job
- Work-item status breakdown (pending/done/not found/failed)
- Aggregate totals across all jobs
"""

import sys
from pathlib import Path

# Add project root to path so we can import skuscout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from skuscout.contexts.jobs.registry import JobRegistry
from skuscout.contexts.jobs.work_items import WorkItemStore
from skuscout.contexts.storage.getter import get_state_store

COUNT_KEYS = ("total", "pending", "in_progress", "done", "not_found", "failed")


def get_job_stats(registry: JobRegistry, job_id: str) -> dict:
    """Work-item statistics of a single job."""
    return registry.work_items.stats(job_id)


def main():
    """Display work-item statistics for all jobs."""
    store = get_state_store()
    registry = JobRegistry(store, WorkItemStore(store))
    jobs = registry.list_jobs()

    if not jobs:
        print("No jobs found in the store")
        return

    # Accumulate totals
    totals = {key: 0 for key in COUNT_KEYS}

    # Display stats for each job
    for job in jobs:
        stats = get_job_stats(registry, job.job_id)

        print(f"{job.job_id} [{job.status.value}]:")
        print(f"  Total: {stats['total']:5d} | Done: {stats['done']:5d} | Not found: {stats['not_found']:4d} | "
              f"Failed: {stats['failed']:4d} | Pending: {stats['pending'] + stats['in_progress']:4d}")
        print()

        # Accumulate totals
        for key in totals:
            totals[key] += stats[key]

    # Display totals
    print("=" * 70)
    print("TOTALS:")
    print(f"  Total: {totals['total']:5d} | Done: {totals['done']:5d} | Not found: {totals['not_found']:4d} | "
          f"Failed: {totals['failed']:4d} | Pending: {totals['pending'] + totals['in_progress']:4d}")


if __name__ == '__main__':
    main()
