#!/usr/bin/env python3

"""
parallelmap Worker Runtime

This module implements the message loop run by persistent socket and MPI workers. A worker receives tagged messages from the master, applies them to its process state and answers every message except "stop" with exactly one reply, which keeps master and worker in lock step. Messages carry the reproducible base seed, exported objects, module names to import, source files to execute, the function bound for the next dispatch and chunks of elements to evaluate. Payloads that may fail to deserialize (exports, bound functions, element arguments) travel as nested cloudpickle bytes so that a worker can report the failure instead of dying. Elements are evaluated with run_task, the same wrapper used by every other backend.

Messages (master -> worker):
    ("seed", base_seed)            set the reproducible base seed
    ("export", bytes)              bind exported objects
    ("library", [module, ...])     import modules
    ("source", [path, ...])        execute source files
    ("bind", bytes)                function, keyword arguments and options of a dispatch
    ("run", bytes)                 evaluate [(index, args), ...]
    ("stop",)                      leave the loop, no reply

Replies (worker -> master):
    ("ok", None) | ("error", TaskFailure) | ("done", [TaskOutcome, ...])

Classes:
    ConnectionChannel: Message channel over a multiprocessing Connection.
    MPIChannel: Message channel over an mpi4py communicator.
    WorkerRuntime: Worker-side message loop.

Date: November 2025
Version: 1.0.0
"""

import os
import socket
import sys
from typing import Any, List, Optional, Tuple

import cloudpickle

from ..core.exceptions import TaskFailure
from ..core.staging import bind_exports, import_modules, source_files
from ..core.utils_logger import get_logger
from .base import TaskOutcome, run_task


class ConnectionChannel:
    """Cloudpickle-framed messages over a multiprocessing.connection.Connection."""

    def __init__(self, conn) -> None:
        self.conn = conn

    def send(self, message: Any) -> None:
        self.conn.send_bytes(cloudpickle.dumps(message))

    def recv(self) -> Any:
        return cloudpickle.loads(self.conn.recv_bytes())

    def close(self) -> None:
        self.conn.close()


class MPIChannel:
    """Cloudpickle-framed messages to and from one peer rank of an mpi4py communicator."""

    def __init__(self, comm, peer: int = 0) -> None:
        self.comm = comm
        self.peer = peer

    def send(self, message: Any) -> None:
        self.comm.send(cloudpickle.dumps(message), dest=self.peer)

    def recv(self) -> Any:
        return cloudpickle.loads(self.comm.recv(source=self.peer))

    def close(self) -> None:
        pass


def worker_ident() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def child_env() -> dict:
    """Environment for locally started worker processes: the master's environment with its module search path prepended to PYTHONPATH."""
    env = os.environ.copy()
    paths = [p for p in sys.path if p and os.path.isdir(p)]
    if env.get("PYTHONPATH"):
        paths.append(env["PYTHONPATH"])
    env["PYTHONPATH"] = os.pathsep.join(paths)
    return env


class WorkerRuntime:
    """
    Serves master messages on a channel until "stop" arrives or the channel closes. State kept between messages: the base seed and the function bound for the current dispatch. Exported objects live in the process-wide exported namespace so that get_exported finds them inside jobs.
    """

    def __init__(self, channel, worker_id: Optional[str] = None) -> None:
        self.channel = channel
        self.worker_id = worker_id or worker_ident()
        self.base_seed: Optional[int] = None
        self.bound: Optional[Tuple] = None
        self.logger = get_logger("worker")

    def serve(self) -> None:
        while True:
            try:
                message = self.channel.recv()
            except (EOFError, OSError):
                self.logger.debug(f"Worker {self.worker_id}: master connection closed")
                break

            if message[0] == "stop":
                break

            reply = self.handle(message)
            try:
                self.channel.send(reply)
            except (EOFError, OSError):
                break
            except Exception as e:
                self.channel.send(("error", TaskFailure.from_exception(self._reply_index(message), e,
                                                                       self.worker_id)))

    def _reply_index(self, message: Tuple) -> int:
        if message[0] == "run":
            try:
                return cloudpickle.loads(message[1])[0][0]
            except Exception:
                return 0
        return 0

    def handle(self, message: Tuple) -> Tuple[str, Any]:
        """
        Apply one message and build its reply. Failures while applying staging or binding messages are reported as ("error", TaskFailure); failures of individual elements are part of the ("done", outcomes) reply.

        Parameters:
            message (Tuple): Tagged message from the master.

        Returns:
            Tuple[str, Any]: Reply to send back.
        """
        tag = message[0]
        try:
            if tag == "seed":
                self.base_seed = message[1]
            elif tag == "export":
                bind_exports(cloudpickle.loads(message[1]))
            elif tag == "library":
                import_modules(message[1])
            elif tag == "source":
                source_files(message[1])
            elif tag == "bind":
                self.bound = cloudpickle.loads(message[1])
            elif tag == "run":
                return "done", self.run_chunk(cloudpickle.loads(message[1]))
            else:
                raise ValueError(f"Unknown message tag: {tag!r}")
        except Exception as e:
            return "error", TaskFailure.from_exception(0, e, self.worker_id)
        return "ok", None

    def run_chunk(self, chunk: List[Tuple[int, Tuple]]) -> List[TaskOutcome]:
        if self.bound is None:
            raise RuntimeError("No function bound before run")

        fn, more_args, call_id, log_dir, stop_on_error = self.bound
        outcomes = []
        for index, args in chunk:
            outcome = run_task(fn, index, args, more_args, call_id=call_id,
                               log_dir=log_dir, base_seed=self.base_seed,
                               worker=self.worker_id)
            outcomes.append(outcome)
            if not outcome.success and stop_on_error:
                break
        return outcomes
