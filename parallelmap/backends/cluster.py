#!/usr/bin/env python3

"""
parallelmap Cluster Scheduling

This module schedules dispatches over a set of persistent workers and is shared by the socket and MPI backends, which only differ in how messages reach a worker. The WorkerPool interface abstracts that transport. The ClusterScheduler broadcasts staging messages and the reproducible seed to every worker, binds the mapped function on all workers before a dispatch, and distributes the elements either statically (cyclic round-robin chunks, one per worker, so the element-to-worker assignment is fixed) or dynamically (one element at a time to whichever worker is idle, for heterogeneous runtimes). A worker stops its chunk at the first failure; the scheduler then stops handing out work, drains the replies still in flight so that master and workers stay in lock step for the next dispatch, and returns the partial outcomes. A worker lost mid-dispatch is recorded as a WorkerLost failure for the chunk it was evaluating, the remaining workers are drained the same way, and the scheduler refuses further work with ResourceError because the pool is no longer complete.

Classes:
    WorkerPool: Transport interface to a fixed set of workers.
    ClusterScheduler: Staging broadcast and element scheduling over a WorkerPool.
    WorkerLostError: Raised by a WorkerPool when a worker connection dies.

Date: November 2025
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, List, Optional, Set, Tuple

import cloudpickle

from ..core.constants import LOST_WORKER_TYPE
from ..core.exceptions import ResourceError, StagingError, TaskFailure
from ..core.staging import StagedItems
from ..core.utils_logger import get_logger
from .base import TaskBatch, TaskOutcome


class WorkerLostError(Exception):
    """The connection to a worker closed or failed, usually because the worker process died."""

    def __init__(self, worker: int, cause: BaseException) -> None:
        self.worker = worker
        super().__init__(f"Lost connection to worker {worker}: {cause!r}")


class WorkerPool(ABC):
    """Transport to workers 0 .. n_workers - 1; a dead worker surfaces as WorkerLostError."""

    @property
    @abstractmethod
    def n_workers(self) -> int:
        """Number of connected workers."""

    @abstractmethod
    def send(self, worker: int, message: Any) -> None:
        """Send one message to a worker."""

    @abstractmethod
    def recv(self, worker: int) -> Any:
        """Receive the next reply of a specific worker."""

    @abstractmethod
    def recv_any(self, pending: Set[int]) -> Tuple[int, Any]:
        """Receive the next reply of any worker in pending."""

    @abstractmethod
    def close(self) -> None:
        """Stop the workers and release the transport; idempotent."""


def cyclic_chunks(n_tasks: int, n_workers: int) -> List[List[int]]:
    return [list(range(rank, n_tasks, n_workers)) for rank in range(min(n_workers, n_tasks))]


def single_chunks(n_tasks: int) -> List[List[int]]:
    return [[i] for i in range(n_tasks)]


class ClusterScheduler:
    """
    Broadcasts staging and schedules elements over a WorkerPool.
    """

    def __init__(self, pool: WorkerPool, load_balancing: bool = False) -> None:
        self.pool = pool
        self.load_balancing = load_balancing
        self.lost_workers: Set[int] = set()
        self.logger = get_logger("backends.cluster")

    @property
    def broken(self) -> bool:
        return bool(self.lost_workers)

    def _check_usable(self) -> None:
        if self.broken:
            lost = ", ".join(str(w) for w in sorted(self.lost_workers))
            raise ResourceError(f"Worker(s) {lost} of the pool were lost in an earlier dispatch; "
                                f"stop and start the session again to get a new pool.")

    def broadcast(self, message: Any) -> List[Tuple[str, Any]]:
        """
        Send a message to every worker and collect one reply per worker in worker order. All replies are collected even when some report errors.

        Parameters:
            message (Any): Message sent unchanged to each worker.

        Returns:
            List[Tuple[str, Any]]: Replies indexed by worker.

        Raises:
            ResourceError: The pool lost a worker, now or in an earlier dispatch.
        """
        self._check_usable()
        try:
            for worker in range(self.pool.n_workers):
                self.pool.send(worker, message)
            return [self.pool.recv(worker) for worker in range(self.pool.n_workers)]
        except WorkerLostError as e:
            self.lost_workers.add(e.worker)
            raise ResourceError(str(e)) from e

    def _lost_chunk(self, worker: int, chunk: List[int], cause: WorkerLostError) -> TaskOutcome:
        self.lost_workers.add(worker)
        elements = ", ".join(str(i + 1) for i in chunk)
        self.logger.error(f"Worker {worker} was lost while evaluating element(s) {elements}")
        failure = TaskFailure(index=chunk[0], exc_type=LOST_WORKER_TYPE,
                              message=f"Worker {worker} exited while evaluating element(s) "
                                      f"{elements}: {cause}",
                              worker=str(worker))
        return TaskOutcome(index=chunk[0], success=False, failure=failure, worker=str(worker))

    def _broadcast_checked(self, message: Any, what: str) -> None:
        errors = [payload for tag, payload in self.broadcast(message) if tag == "error"]
        if errors:
            raise StagingError(f"Failed to {what} on {len(errors)} worker(s): {errors[0]}")

    def seed(self, base_seed: int) -> None:
        self._broadcast_checked(("seed", base_seed), "set the random seed")

    def push(self, staged: StagedItems) -> None:
        """
        Deliver staged items to every worker: exports first, then modules, then source files, so sourced code can rely on both. Any worker error raises StagingError after all replies were collected.

        Parameters:
            staged (StagedItems): Pending exports, modules and sources.

        Returns:
            None
        """
        if staged.exports:
            self._broadcast_checked(("export", cloudpickle.dumps(staged.exports)),
                                    f"export {', '.join(staged.exports)}")
        if staged.libraries:
            self._broadcast_checked(("library", list(staged.libraries)),
                                    f"import {', '.join(staged.libraries)}")
        if staged.sources:
            self._broadcast_checked(("source", list(staged.sources)),
                                    f"source {', '.join(staged.sources)}")

    def execute(self, batch: TaskBatch) -> List[TaskOutcome]:
        """
        Bind the function on all workers and evaluate the batch. Outcomes are returned ordered by element index; after an aborting failure only the outcomes received so far are returned.

        Parameters:
            batch (TaskBatch): Evaluations of the dispatch.

        Returns:
            List[TaskOutcome]: Outcomes ordered by element index.
        """
        n_tasks = len(batch)
        if n_tasks == 0:
            return []

        bind = cloudpickle.dumps((batch.fn, batch.more_args, batch.call_id,
                                  batch.log_dir, batch.stop_on_error))
        bind_errors = [payload for tag, payload in self.broadcast(("bind", bind)) if tag == "error"]
        if bind_errors:
            return [TaskOutcome(index=0, success=False, failure=bind_errors[0],
                                worker=bind_errors[0].worker)]

        if self.load_balancing:
            chunks = deque(single_chunks(n_tasks))
        else:
            chunks = deque(cyclic_chunks(n_tasks, self.pool.n_workers))

        outcomes: List[Optional[TaskOutcome]] = [None] * n_tasks
        idle = deque(range(self.pool.n_workers))
        in_flight = {}
        aborted = False

        while True:
            while idle and chunks and not aborted:
                worker = idle.popleft()
                chunk = chunks.popleft()
                payload = cloudpickle.dumps([(i, batch.args[i]) for i in chunk])
                try:
                    self.pool.send(worker, ("run", payload))
                except WorkerLostError as e:
                    outcomes[chunk[0]] = self._lost_chunk(worker, chunk, e)
                    aborted = True
                    break
                in_flight[worker] = chunk

            if not in_flight:
                break

            try:
                worker, (tag, payload) = self.pool.recv_any(set(in_flight))
            except WorkerLostError as e:
                chunk = in_flight.pop(e.worker)
                outcomes[chunk[0]] = self._lost_chunk(e.worker, chunk, e)
                aborted = True
                continue

            chunk = in_flight.pop(worker)
            idle.append(worker)

            if tag == "done":
                for outcome in payload:
                    outcomes[outcome.index] = outcome
                    if not outcome.success and batch.stop_on_error:
                        aborted = True
            else:
                failure: TaskFailure = payload
                failure.index = chunk[0]
                outcomes[chunk[0]] = TaskOutcome(index=chunk[0], success=False,
                                                 failure=failure, worker=failure.worker)
                aborted = True

        if aborted:
            self.logger.debug(f"Dispatch {batch.call_id} aborted after a failure")

        return [o for o in outcomes if o is not None]
