"""
Run the whole pipeline for one product from the command line.

    python manual_trigger.py <product_id>          # existing Product row
    python manual_trigger.py --post                # also run the posting sweep
"""
import sys

from autopost.core.logging import setup_logging
from autopost.workers.jobs import get_orchestrator
from autopost.workers.scheduler import init_db


def manual_trigger(product_id: str, post: bool = False):
    print("--- MANUAL TRIGGER START ---")
    init_db()
    orchestrator = get_orchestrator()

    print(f"1. Creating job for product {product_id}...")
    job, created = orchestrator.create_job_from_product(product_id)
    print(f"   {'Created' if created else 'Reusing active'} job {job.id} ({job.product_name})")

    print("2. Running pipeline...")
    result = orchestrator.run_auto_pipeline(job.id)
    print(f"   [{result.stage}] {result.message}")
    if result.error:
        print(f"   [ERROR] {result.error}")

    if post:
        print("3. Running posting sweep...")
        summary = orchestrator.process_scheduled_jobs()
        print(f"   Posted {summary.success}, failed {summary.failed}, skipped {summary.skipped}")


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args:
        print(__doc__)
        sys.exit(1)
    setup_logging("INFO", structured=False)
    manual_trigger(args[0], post="--post" in sys.argv)
