#!/usr/bin/env python3

"""
Batch job entry point.

Run as ``python -m parallelmap.backends.batch_job JOB_FILE`` by the batch queue backend, either as a local subprocess or inside a job submitted to a cluster queue. The job loads the staging of its registry, evaluates its element with run_task and writes the outcome next to the job file. Errors while loading the registry staging are reported as the element's failure.
"""

import argparse
import sys

import cloudpickle

from .base import TaskOutcome, run_task
from .batchqueue import load_registry_staging, write_atomic
from .worker import worker_ident
from ..core.exceptions import TaskFailure


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="parallelmap batch queue job")
    parser.add_argument('job_file', type=str, help='Path of the job file to run')
    return parser


def main(argv=None) -> int:
    args = create_parser().parse_args(argv)

    with open(args.job_file, "rb") as f:
        job = cloudpickle.load(f)

    worker = worker_ident()
    try:
        load_registry_staging(job["registry"])
    except Exception as e:
        failure = TaskFailure.from_exception(job["index"], e, worker)
        outcome = TaskOutcome(index=job["index"], success=False, failure=failure, worker=worker)
    else:
        outcome = run_task(job["fn"], job["index"], job["args"], job["more_args"],
                           call_id=job["call_id"], log_dir=job["log_dir"],
                           base_seed=job["base_seed"], worker=worker)

    try:
        data = cloudpickle.dumps(outcome)
    except Exception as e:
        failure = TaskFailure.from_exception(job["index"], e, worker)
        data = cloudpickle.dumps(TaskOutcome(index=job["index"], success=False,
                                             failure=failure, worker=worker))
    write_atomic(job["result_file"], data)
    return 0


if __name__ == "__main__":
    sys.exit(main())
