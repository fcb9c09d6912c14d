#!/usr/bin/env python3

"""
parallelmap Multiprocess Backend

This module implements the fork-based multiprocess backend. Every dispatch forks a fresh ProcessPoolExecutor of worker processes from the master, so the mapped function, its inputs and every object exported on the master are inherited through the fork instead of being pickled; closures and lambdas work as mapped functions and only the results travel back to the master. Static scheduling pre-assigns contiguous chunks of ceil(n / workers) elements to the workers, while load balancing hands out one element at a time to whichever worker is idle, which suits heterogeneous runtimes. Staged modules and source files are applied in the master right before the fork so the children inherit them. With reproducible sessions the base seed drawn at session start is used to reseed every element. The first failure terminates the pool unless the dispatch asked for every element to be evaluated. A worker process that dies mid-dispatch breaks the executor; the dispatch then reports a WorkerLost failure and the next dispatch forks a fresh pool.

Classes:
    MultiProcessHandle: Fork context, worker count and base seed of a session.
    MultiProcessProvider: Provider creating one fork pool per dispatch.

Functions:
    detect_cpus: Number of CPUs of the host.
    fork_supported: Whether the platform supports the fork start method.

Date: November 2025
Version: 1.0.0
"""

import math
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from multiprocessing import active_children, cpu_count, get_all_start_methods, get_context
from typing import List, Optional

from ..core.constants import LOST_WORKER_TYPE, Mode
from ..core.exceptions import ResourceError, TaskFailure
from ..core.seeding import draw_base_seed
from ..core.staging import StagedItems, bind_exports, import_modules, source_files
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome, run_task

_fork_payload = None


def detect_cpus() -> int:
    return max(1, cpu_count())


def fork_supported() -> bool:
    return "fork" in get_all_start_methods()


def _fork_worker_chunk(indices: List[int]) -> List[TaskOutcome]:
    """
    Evaluate a chunk of elements inside a forked child. The batch and base seed are read from the module-level payload inherited from the master at fork time; this function must stay at module level to be usable as a pool target. With stop_on_error the chunk ends at its first failure.

    Parameters:
        indices (List[int]): Zero-based element indices of the chunk.

    Returns:
        List[TaskOutcome]: Outcomes sent back to the master.
    """
    batch, base_seed = _fork_payload
    outcomes = []
    for index in indices:
        outcome = run_task(batch.fn, index, batch.args[index], batch.more_args,
                           call_id=batch.call_id, log_dir=batch.log_dir,
                           base_seed=base_seed, worker=f"pid{os.getpid()}")
        outcomes.append(outcome)
        if not outcome.success and batch.stop_on_error:
            break
    return outcomes


class MultiProcessHandle(BackendHandle):

    def __init__(self, cpus: int, base_seed: Optional[int]) -> None:
        super().__init__()
        self.context = get_context("fork")
        self.cpus = cpus
        self.base_seed = base_seed


class MultiProcessProvider(BackendProvider):

    mode = Mode.MULTIPROCESS

    def create(self) -> MultiProcessHandle:
        if not fork_supported():
            raise ResourceError("Multiprocess mode is not supported on this platform (no fork).")

        base_seed = draw_base_seed() if self.config.reproducible else None
        return MultiProcessHandle(self.config.cpus, base_seed)

    def push(self, handle: MultiProcessHandle, staged: StagedItems) -> None:
        bind_exports(staged.exports)
        import_modules(staged.libraries)
        source_files(staged.sources)

    def execute(self, handle: MultiProcessHandle, batch: TaskBatch) -> List[TaskOutcome]:
        """
        Fork a process pool, evaluate the batch and collect outcomes in input order. The pool is sized to min(cpus, elements). An aborting failure terminates the workers so elements still running are discarded. A worker process that dies breaks the pool; the dispatch then ends with a WorkerLost failure for the earliest chunk without a result.

        Parameters:
            handle (MultiProcessHandle): Session handle.
            batch (TaskBatch): Evaluations of the dispatch.

        Returns:
            List[TaskOutcome]: Outcomes ordered by element index; partial when aborted on failure.
        """
        global _fork_payload

        n_tasks = len(batch)
        if n_tasks == 0:
            return []

        processes = min(handle.cpus, n_tasks)
        if self.config.load_balancing:
            chunksize = 1
        else:
            chunksize = math.ceil(n_tasks / processes)
        chunks = [list(range(start, min(start + chunksize, n_tasks)))
                  for start in range(0, n_tasks, chunksize)]

        outcomes: List[Optional[TaskOutcome]] = [None] * n_tasks
        _fork_payload = (batch, handle.base_seed)
        earlier_children = set(active_children())

        try:
            with ProcessPoolExecutor(max_workers=processes, mp_context=handle.context) as executor:
                futures = {executor.submit(_fork_worker_chunk, chunk): chunk for chunk in chunks}
                workers = [p for p in active_children() if p not in earlier_children]
                pending = set(futures)
                aborted = False

                for future in as_completed(futures):
                    pending.discard(future)
                    try:
                        chunk_outcomes = future.result()
                    except BrokenProcessPool as e:
                        first = min(futures[f][0] for f in pending | {future})
                        outcomes[first] = self._lost_outcome(first, e)
                        aborted = True
                        break

                    for outcome in chunk_outcomes:
                        outcomes[outcome.index] = outcome
                        if not outcome.success and batch.stop_on_error:
                            aborted = True
                    if aborted:
                        self.logger.debug(f"Aborting dispatch {batch.call_id} after a failure")
                        break

                if aborted:
                    for future in pending:
                        future.cancel()
                    for process in workers:
                        process.terminate()
        finally:
            _fork_payload = None

        return [o for o in outcomes if o is not None]

    def _lost_outcome(self, index: int, cause: BaseException) -> TaskOutcome:
        self.logger.error(f"A worker process exited while element {index + 1} or later was running")
        failure = TaskFailure(index=index, exc_type=LOST_WORKER_TYPE,
                              message=f"A worker process exited unexpectedly: {cause}")
        return TaskOutcome(index=index, success=False, failure=failure)

    def destroy(self, handle: MultiProcessHandle) -> None:
        handle.closed = True
