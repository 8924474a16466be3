#!/usr/bin/env python3
"""
aggregate_csv.py
Run one or more CSV aggregation jobs locally, without the HTTP API.

Examples:
  # Aggregate a file and print the job status as JSON
  python scripts/aggregate_csv.py sales.csv

  # Several files at once on two workers, keep the inputs, verbose logging
  python scripts/aggregate_csv.py jan.csv feb.csv --workers 2 --keep-input -v

  # Write results somewhere else
  python scripts/aggregate_csv.py sales.csv --result-dir ./out
"""

import sys
import json
import logging
import argparse

from csv_aggregator.core.config import settings
from csv_aggregator.core.exceptions import CapacityError
from csv_aggregator.models.job import JobState
from csv_aggregator.services.aggregation_service import AggregationService
from csv_aggregator.services.job_service import JobRegistry


# ---------- Logging ----------
def setup_logging(verbosity: int) -> None:
    level = logging.WARNING if verbosity == 0 else logging.INFO if verbosity == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

log = logging.getLogger("aggregate_csv")


# ---------- CLI ----------
def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sum the count column of CSV files per category."
    )
    parser.add_argument("files", nargs="+", help="Input CSV files (header, category, date, count).")
    parser.add_argument("--result-dir", default=settings.result_dir, help="Directory for result CSV files.")
    parser.add_argument("--batch-size", type=int, default=settings.batch_size,
                        help="Accepted records between progress checkpoints.")
    parser.add_argument("--workers", type=int, default=settings.max_workers, help="Number of worker threads.")
    parser.add_argument("--keep-input", action="store_true", help="Never delete input files.")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for each job.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG.")
    return parser


def run(args) -> int:
    setup_logging(args.verbose)

    service = AggregationService(
        registry=JobRegistry(),
        upload_dir=settings.upload_dir,
        result_dir=args.result_dir,
        batch_size=args.batch_size,
        max_workers=args.workers,
        max_queued_jobs=len(args.files),
        input_cleanup="never" if args.keep_input else settings.input_cleanup
    )

    exit_code = 0
    try:
        job_ids = []
        for path in args.files:
            try:
                job_ids.append(service.submit(path))
            except CapacityError as e:
                log.error("Could not submit %s: %s", path, e)
                exit_code = 1

        for job_id in job_ids:
            job = service.wait(job_id, timeout=args.timeout)
            print(json.dumps(job.model_dump(mode="json", exclude_none=True), indent=2))
            if job.status != JobState.COMPLETED:
                exit_code = 1
    finally:
        service.shutdown(wait=True)

    return exit_code


def main():
    parser = build_arg_parser()
    args = parser.parse_args()
    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)


if __name__ == "__main__":
    main()
