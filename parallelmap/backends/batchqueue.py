#!/usr/bin/env python3

"""
parallelmap Batch Queue Backend

This module implements the batch queue backend, which evaluates every element as an independent job that communicates with the master only through files under the storage directory. At session start a registry directory with a random unique name (parallelMap_batchqueue_reg_<random>) is created below the storage directory, so several sessions may share one storage directory. Staged exports are written into the registry as one cloudpickle file per name and recorded in a YAML manifest together with staged modules and source files; every job loads the whole registry staging before it runs, which means staging persists for the rest of the session. Each dispatch writes one job file per element, submits the jobs and polls for their result files, then collects the results in input order and removes the dispatch's job directory.

Jobs are submitted either as local subprocesses (the default, at most max_concurrent_jobs or the CPU count at once) or through a submit_command template such as 'sbatch --wrap "{command}"', formatted with the job command, the job id and the resources mapping (resource entries are also available as top-level fields). Local jobs that exit without writing a result are reported as failed elements; jobs handed to an external queue are waited for until their result file appears.

Registry layout:
    manifest.yaml                   staged export names, modules and source files
    exports/<name>.pkl              one cloudpickled object per export
    jobs/<call_id>/<n>.job          cloudpickled job description of element n
    jobs/<call_id>/<n>.result       cloudpickled TaskOutcome written by the job
    jobs/<call_id>/<n>.out          stdout and stderr of a local job process

Classes:
    BatchQueueHandle: Registry directory and base seed of a session.
    BatchQueueProvider: Provider writing, submitting and collecting jobs.

Functions:
    load_registry_staging: Apply a registry's staging in the current process.
    write_atomic: Write a file so readers never observe partial content.

Date: November 2025
Version: 1.0.0
"""

import os
import shlex
import subprocess
import sys
import time
from collections import deque
from multiprocessing import cpu_count
from typing import Any, Dict, List, Optional

import cloudpickle
import yaml

from ..core.constants import Mode
from ..core.exceptions import ResourceError, StagingError, TaskFailure
from ..core.seeding import draw_base_seed
from ..core.staging import StagedItems, bind_exports, import_modules, source_files
from ..core.utils_file import StorageManager
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome
from .worker import child_env

JOB_MODULE = "parallelmap.backends.batch_job"
MANIFEST_FILE = "manifest.yaml"


def write_atomic(path: str, data: bytes) -> None:
    tmp_path = f"{path}.tmp{os.getpid()}"
    with open(tmp_path, "wb") as f:
        f.write(data)
    os.replace(tmp_path, path)


def read_manifest(registry: str) -> Dict[str, List[str]]:
    path = os.path.join(registry, MANIFEST_FILE)
    if not os.path.isfile(path):
        return {"exports": [], "libraries": [], "sources": []}
    with open(path, "r") as f:
        manifest = yaml.safe_load(f) or {}
    return {key: list(manifest.get(key) or []) for key in ("exports", "libraries", "sources")}


def load_registry_staging(registry: str) -> None:
    """
    Apply everything staged in a registry to the current process: bind the exported objects, import the modules and execute the source files, in that order.

    Parameters:
        registry (str): Registry directory of the session.

    Returns:
        None
    """
    manifest = read_manifest(registry)
    exports = {}
    for name in manifest["exports"]:
        with open(os.path.join(registry, "exports", f"{name}.pkl"), "rb") as f:
            exports[name] = cloudpickle.load(f)
    bind_exports(exports)
    import_modules(manifest["libraries"])
    source_files(manifest["sources"])


class BatchQueueHandle(BackendHandle):

    def __init__(self, registry: str, base_seed: Optional[int]) -> None:
        super().__init__()
        self.registry = registry
        self.base_seed = base_seed


class BatchQueueProvider(BackendProvider):

    mode = Mode.BATCHQUEUE

    @property
    def n_workers(self) -> int:
        return self.config.max_concurrent_jobs or max(1, cpu_count())

    def create(self) -> BatchQueueHandle:
        registry = StorageManager.new_registry_dir(self.config.storagedir)
        os.makedirs(os.path.join(registry, "exports"))
        os.makedirs(os.path.join(registry, "jobs"))
        base_seed = draw_base_seed() if self.config.reproducible else None
        self.logger.debug(f"Created batch queue registry {registry}")
        return BatchQueueHandle(registry, base_seed)

    def push(self, handle: BatchQueueHandle, staged: StagedItems) -> None:
        """
        Persist staged items in the registry. Exports overwrite earlier exports of the same name; modules and source files are appended to the manifest in staging order.

        Parameters:
            handle (BatchQueueHandle): Session handle.
            staged (StagedItems): Pending exports, modules and sources.

        Returns:
            None
        """
        manifest = read_manifest(handle.registry)

        for name, value in staged.exports.items():
            try:
                data = cloudpickle.dumps(value)
            except Exception as e:
                raise StagingError(f"Failed to serialize export '{name}': {e}") from e
            write_atomic(os.path.join(handle.registry, "exports", f"{name}.pkl"), data)
            if name not in manifest["exports"]:
                manifest["exports"].append(name)

        for key, items in (("libraries", staged.libraries), ("sources", staged.sources)):
            for item in items:
                if item not in manifest[key]:
                    manifest[key].append(item)

        write_atomic(os.path.join(handle.registry, MANIFEST_FILE),
                     yaml.safe_dump(manifest, default_flow_style=False).encode())

    def job_command(self, job_file: str) -> List[str]:
        return [sys.executable, "-m", JOB_MODULE, job_file]

    def _submit_local(self, job_file: str, out_file: str) -> subprocess.Popen:
        with open(out_file, "w") as out:
            return subprocess.Popen(self.job_command(job_file), stdout=out,
                                    stderr=subprocess.STDOUT, env=child_env(),
                                    cwd=os.getcwd())

    def _submit_template(self, job_file: str, job_id: str) -> None:
        """
        Submit one job through the submit_command template. A non-zero exit status of the submission command raises ResourceError.
        """
        resources = dict(self.config.resources)
        fields: Dict[str, Any] = dict(resources)
        fields.update(command=shlex.join(self.job_command(job_file)), job_id=job_id,
                      resources=resources)
        command = self.config.submit_command.format_map(fields)

        result = subprocess.run(command, shell=True, capture_output=True, text=True,
                                env=child_env())
        if result.returncode != 0:
            raise ResourceError(f"Submitting job {job_id} failed with exit status "
                                f"{result.returncode}: {result.stderr.strip()}")
        self.logger.debug(f"Submitted job {job_id}: {result.stdout.strip()}")

    def _write_jobs(self, handle: BatchQueueHandle, batch: TaskBatch, job_dir: str) -> List[str]:
        job_files = []
        for index, args in enumerate(batch.args):
            job = {
                "fn": batch.fn,
                "index": index,
                "args": args,
                "more_args": batch.more_args,
                "call_id": batch.call_id,
                "log_dir": batch.log_dir,
                "base_seed": handle.base_seed,
                "registry": handle.registry,
                "result_file": os.path.join(job_dir, f"{index + 1}.result"),
            }
            job_file = os.path.join(job_dir, f"{index + 1}.job")
            write_atomic(job_file, cloudpickle.dumps(job))
            job_files.append(job_file)
        return job_files

    def execute(self, handle: BatchQueueHandle, batch: TaskBatch) -> List[TaskOutcome]:
        """
        Write one job per element, submit the jobs and poll their result files until every submitted job has finished. With stop_on_error no further jobs are submitted after the first failed result, but jobs already running are waited for.

        Parameters:
            handle (BatchQueueHandle): Session handle.
            batch (TaskBatch): Evaluations of the dispatch.

        Returns:
            List[TaskOutcome]: Outcomes ordered by element index; partial when aborted on failure.
        """
        n_tasks = len(batch)
        if n_tasks == 0:
            return []

        job_dir = os.path.join(handle.registry, "jobs", str(batch.call_id))
        StorageManager.remove_dir(job_dir)
        os.makedirs(job_dir)

        try:
            job_files = self._write_jobs(handle, batch, job_dir)
            return self._run_jobs(batch, job_dir, job_files)
        finally:
            StorageManager.remove_dir(job_dir)

    def _run_jobs(self, batch: TaskBatch, job_dir: str,
                  job_files: List[str]) -> List[TaskOutcome]:
        """
        Submit and poll the jobs of a dispatch. If submitting or polling raises, local job processes already started are killed and reaped before the error propagates so none outlives its job directory.
        """
        local = self.config.submit_command is None
        limit = self.n_workers if local else len(job_files)

        queued = deque(range(len(job_files)))
        running: Dict[int, Optional[subprocess.Popen]] = {}
        outcomes: List[Optional[TaskOutcome]] = [None] * len(job_files)
        aborted = False

        try:
            while queued or running:
                while queued and len(running) < limit and not aborted:
                    index = queued.popleft()
                    job_id = f"{batch.call_id}-{index + 1}"
                    if local:
                        out_file = os.path.join(job_dir, f"{index + 1}.out")
                        running[index] = self._submit_local(job_files[index], out_file)
                    else:
                        self._submit_template(job_files[index], job_id)
                        running[index] = None

                if aborted and not running:
                    break

                for index in list(running):
                    outcome = self._poll_job(index, running[index], job_dir)
                    if outcome is None:
                        continue
                    del running[index]
                    outcomes[index] = outcome
                    if not outcome.success and batch.stop_on_error and not aborted:
                        self.logger.debug(f"Aborting dispatch {batch.call_id} after failure in element {index + 1}")
                        aborted = True

                if running:
                    time.sleep(self.config.poll_interval)
        except BaseException:
            self._kill_local_jobs(running)
            raise

        return [o for o in outcomes if o is not None]

    def _kill_local_jobs(self, running: Dict[int, Optional[subprocess.Popen]]) -> None:
        for index, proc in running.items():
            if proc is None:
                self.logger.warning(f"Job of element {index + 1} was submitted to the queue and may still run")
                continue
            if proc.poll() is None:
                proc.kill()
            proc.wait()

    def _poll_job(self, index: int, proc: Optional[subprocess.Popen],
                  job_dir: str) -> Optional[TaskOutcome]:
        result_file = os.path.join(job_dir, f"{index + 1}.result")
        exited = proc is not None and proc.poll() is not None

        if os.path.isfile(result_file):
            if proc is not None:
                proc.wait()
            with open(result_file, "rb") as f:
                return cloudpickle.load(f)

        if exited:
            out_file = os.path.join(job_dir, f"{index + 1}.out")
            output = ""
            if os.path.isfile(out_file):
                with open(out_file, "r", errors="replace") as f:
                    output = f.read()
            failure = TaskFailure(index=index, exc_type="JobError",
                                  message=f"Job exited with status {proc.returncode} without a result",
                                  traceback=output, worker=f"pid{proc.pid}")
            return TaskOutcome(index=index, success=False, failure=failure, worker=failure.worker)

        return None

    def destroy(self, handle: BatchQueueHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        StorageManager.remove_dir(handle.registry)
        self.logger.debug(f"Removed batch queue registry {handle.registry}")
