#!/usr/bin/env python3

"""
parallelmap Error Taxonomy

This module defines the exceptions, warnings and error marker values raised or produced by the session lifecycle, the dispatcher and the backend providers. Configuration errors reject invalid or contradictory start arguments before any session state changes. Resource errors report storage directories that cannot be written, platforms that lack a required capability, and workers that could not be reached or staged. Task errors carry the captured failure of a function evaluation on a worker together with every other failure observed before the call was aborted. The TaskFailure dataclass is the picklable record that crosses process boundaries in place of the original exception object, and doubles as the error marker placed in result slots when failures are suppressed.

Classes:
    ParallelMapError: Base class of all package errors.
    ConfigurationError: Invalid or contradictory start configuration.
    ResourceError: Storage, platform or worker resource problem.
    StagingError: Pushing exports, modules or sources to workers failed.
    TaskError: A mapped function evaluation failed.
    UnregisteredLevelWarning: The selected level is not in the level registry.
    TaskFailure: Picklable record describing one failed evaluation.

Date: November 2025
Version: 1.0.0
"""

import traceback
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class TaskFailure:
    """
    Picklable description of a failed function evaluation. Exceptions raised inside worker processes are not always picklable, so workers ship this record back to the master instead. The record keeps the element index, exception type name, message and formatted traceback together with an identifier of the worker that ran the element. When errors are suppressed in local mode the record itself is placed into the result slot of the failing element.

    Attributes:
        index (int): Zero-based position of the failing element in the inputs.
        exc_type (str): Name of the exception class.
        message (str): String form of the exception.
        traceback (str): Formatted traceback captured where the error occurred.
        worker (Optional[str]): Identifier of the worker process, None for the master.
    """
    index: int
    exc_type: str
    message: str
    traceback: str = ""
    worker: Optional[str] = None

    @classmethod
    def from_exception(cls, index: int, exc: BaseException,
                       worker: Optional[str] = None) -> 'TaskFailure':
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(index=index, exc_type=type(exc).__name__, message=str(exc),
                   traceback=tb, worker=worker)

    def __str__(self) -> str:
        where = f" on worker {self.worker}" if self.worker else ""
        return f"{self.exc_type} in element {self.index + 1}{where}: {self.message}"


class ParallelMapError(Exception):
    """Base class for all parallelmap errors."""


class ConfigurationError(ParallelMapError, ValueError):
    """Invalid or contradictory session configuration."""


class ResourceError(ParallelMapError, OSError):
    """Storage directory, platform capability or worker resource is unavailable."""


class StagingError(ResourceError):
    """Exported objects, modules or source files could not be pushed to the workers."""


class TaskError(ParallelMapError):
    """
    Raised when a mapped function evaluation fails. The first failure received by the master is available as ``first``; every failure observed before the call was aborted is kept in ``failures`` in the order received.
    """

    def __init__(self, failures: List[TaskFailure], call_id: Optional[int] = None) -> None:
        self.failures = list(failures)
        self.first = self.failures[0] if self.failures else None
        self.call_id = call_id
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.failures:
            return "One or more errors occurred during parallel_map."
        lines = [f"{len(self.failures)} error(s) occurred during parallel_map, first:"]
        lines.append(str(self.first))
        if self.first.traceback:
            lines.append(self.first.traceback.rstrip())
        return "\n".join(lines)


class UnregisteredLevelWarning(UserWarning):
    """The level selected at start is not present in the level registry."""


def is_failure(value) -> bool:
    """Return True when a result slot holds a captured TaskFailure marker."""
    return isinstance(value, TaskFailure)
