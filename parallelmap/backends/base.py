#!/usr/bin/env python3

"""
parallelmap Backend Provider Contract

This module defines the contract every parallelization backend implements and the pieces shared by all of them. A backend provider creates an opaque handle at session start (worker pool settings, cluster connection or batch registry), pushes staged exports, modules and source files to its workers before a dispatch, executes a batch of function evaluations returning one outcome per element in input order, and destroys its handle at session stop. The run_task function is the worker-side wrapper around a single evaluation: it reseeds the random streams for reproducible sessions, redirects output into the element's log file when logging is enabled, captures failures into picklable TaskFailure records and measures execution time. It is used unchanged in the master (local mode), in forked children, in socket and MPI workers and in batch jobs.

Classes:
    TaskBatch: One dispatch worth of function evaluations.
    TaskOutcome: Result or failure of a single evaluation.
    BackendHandle: Base class of per-mode handles with idempotent close tracking.
    BackendProvider: Abstract create / push / execute / destroy contract.

Functions:
    run_task: Evaluate one element with seeding, logging and failure capture.
    log_file_path: Path of an element's log file inside a dispatch log directory.

Date: November 2025
Version: 1.0.0
"""

import os
import sys
import time
from abc import ABC, abstractmethod
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.constants import Mode
from ..core.exceptions import TaskFailure
from ..core.seeding import clear_task_seed, seed_task
from ..core.staging import StagedItems
from ..core.utils_logger import get_logger


@dataclass
class TaskBatch:
    """
    Function evaluations of one dispatch.

    Attributes:
        fn (Callable): Function applied to every element.
        args (List[Tuple]): Positional arguments, one tuple per element.
        more_args (Dict[str, Any]): Keyword arguments passed to every evaluation.
        call_id (int): Map invocation number of the dispatch.
        log_dir (Optional[str]): Dispatch log directory when logging is enabled.
        stop_on_error (bool): Abort at the first failure instead of evaluating every element.
    """
    fn: Callable
    args: List[Tuple]
    more_args: Dict[str, Any] = field(default_factory=dict)
    call_id: int = 1
    log_dir: Optional[str] = None
    stop_on_error: bool = True

    def __len__(self) -> int:
        return len(self.args)


@dataclass
class TaskOutcome:
    """
    Outcome of a single evaluation.

    Attributes:
        index (int): Zero-based element index.
        success (bool): Whether the evaluation returned normally.
        value (Any): Returned value, None on failure.
        failure (Optional[TaskFailure]): Captured failure, None on success.
        execution_time (float): Wall time of the evaluation in seconds.
        worker (Optional[str]): Identifier of the process that ran the element.
        exception (Optional[BaseException]): Original exception, only kept in the master process.
    """
    index: int
    success: bool
    value: Any = None
    failure: Optional[TaskFailure] = None
    execution_time: float = 0.0
    worker: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)


def log_file_path(log_dir: str, index: int) -> str:
    return os.path.join(log_dir, f"{index + 1}.log")


def run_task(fn: Callable, index: int, args: Tuple, more_args: Dict[str, Any],
             call_id: int = 1, log_dir: Optional[str] = None,
             base_seed: Optional[int] = None, worker: Optional[str] = None,
             keep_exception: bool = False) -> TaskOutcome:
    """
    Evaluate fn for one element and capture the outcome. With a base seed the random streams are reseeded for (call_id, index) first; with a log directory stdout and stderr are written to "<index + 1>.log" in it, followed by the traceback when the evaluation fails. Exceptions derived from Exception are captured, everything else (KeyboardInterrupt, SystemExit) propagates.

    Parameters:
        fn (Callable): Function to evaluate.
        index (int): Zero-based element index.
        args (Tuple): Positional arguments of the element.
        more_args (Dict[str, Any]): Keyword arguments shared by all elements.
        call_id (int): Map invocation number.
        log_dir (Optional[str]): Dispatch log directory, None disables output capture.
        base_seed (Optional[int]): Reproducible base seed, None leaves random state alone.
        worker (Optional[str]): Identifier recorded in the outcome.
        keep_exception (bool): Keep the exception object in the outcome (master only, it may not pickle).

    Returns:
        TaskOutcome: Result or captured failure of the evaluation.
    """
    outcome = TaskOutcome(index=index, success=False, worker=worker)
    task_start = time.time()

    if base_seed is not None:
        seed_task(base_seed, call_id, index)

    log_handle = open(log_file_path(log_dir, index), "w") if log_dir else None

    try:
        if log_handle is not None:
            with redirect_stdout(log_handle), redirect_stderr(log_handle):
                outcome.value = fn(*args, **more_args)
        else:
            outcome.value = fn(*args, **more_args)
        outcome.success = True
    except Exception as e:
        outcome.failure = TaskFailure.from_exception(index, e, worker)
        if keep_exception:
            outcome.exception = e
        if log_handle is not None:
            log_handle.write(outcome.failure.traceback)
    finally:
        outcome.execution_time = time.time() - task_start
        if base_seed is not None:
            clear_task_seed()
        if log_handle is not None:
            log_handle.close()
            sys.stdout.flush()

    return outcome


class BackendHandle:
    """Base class of backend handles; `closed` makes destroy idempotent."""

    def __init__(self) -> None:
        self.closed = False


class BackendProvider(ABC):
    """
    Capability contract of a parallelization backend. Providers are created once per session with the session's backend record; the handle they create is owned by the session until destroy.
    """

    mode: Mode = Mode.LOCAL

    def __init__(self, config: Any) -> None:
        self.config = config
        self.logger = get_logger(f"backends.{self.mode.value}")

    @abstractmethod
    def create(self) -> BackendHandle:
        """Create the backend handle at session start."""

    def push(self, handle: BackendHandle, staged: StagedItems) -> None:
        """Deliver staged exports, modules and sources to the workers; no-op by default."""

    @abstractmethod
    def execute(self, handle: BackendHandle, batch: TaskBatch) -> List[TaskOutcome]:
        """Evaluate the batch and return one outcome per element in input order."""

    @abstractmethod
    def destroy(self, handle: BackendHandle) -> None:
        """Release the handle's resources; calling it again is a no-op."""
