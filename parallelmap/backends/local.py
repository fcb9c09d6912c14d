#!/usr/bin/env python3

"""
Local backend: sequential evaluation in the calling process. There are no workers, so nothing is pushed and logging is never enabled. With suppress_local_errors set, failing elements do not abort the call; their failure records are kept and only logged at DEBUG level.
"""

from typing import List

from ..core.constants import Mode
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome, run_task


class LocalProvider(BackendProvider):

    mode = Mode.LOCAL

    def create(self) -> BackendHandle:
        return BackendHandle()

    def execute(self, handle: BackendHandle, batch: TaskBatch) -> List[TaskOutcome]:
        suppress = self.config.suppress_local_errors
        stop_on_error = batch.stop_on_error and not suppress
        outcomes = []

        for index, args in enumerate(batch.args):
            outcome = run_task(batch.fn, index, args, batch.more_args,
                               call_id=batch.call_id, keep_exception=True)
            outcomes.append(outcome)

            if not outcome.success:
                if suppress:
                    self.logger.debug(f"Suppressed error: {outcome.failure}")
                if stop_on_error:
                    break

        return outcomes

    def destroy(self, handle: BackendHandle) -> None:
        handle.closed = True
