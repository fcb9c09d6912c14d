#!/usr/bin/env python3

"""
parallelmap MPI Backend

This module implements the MPI backend on top of mpi4py dynamic process management. At session start the master spawns cpus worker processes with MPI.COMM_SELF.Spawn, each running the shared worker message loop on the parent intercommunicator, and keeps the intercommunicator for the whole session. The external contract is the same as the socket backend: the pool persists across dispatches, staging and the reproducible base seed are broadcast to every worker, and elements are scheduled by the shared ClusterScheduler. When cpus is not given the worker count defaults to the MPI universe size minus one (the master occupies one slot), with a minimum of one. Importing this module never requires mpi4py; starting an MPI session without it raises ResourceError.

Classes:
    MPIWorkerPool: WorkerPool over an mpi4py intercommunicator.
    MPIHandle: Intercommunicator, pool and scheduler of a session.
    MPIProvider: Provider spawning and disconnecting the MPI workers.

Functions:
    load_mpi: Deferred import of mpi4py.MPI.
    detect_cpus: Universe size minus one.

Date: November 2025
Version: 1.0.0
"""

import importlib.util
import sys
from typing import Any, List, Optional, Set, Tuple

import cloudpickle

from ..core.constants import Mode
from ..core.exceptions import ResourceError
from ..core.seeding import draw_base_seed
from ..core.staging import StagedItems
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome
from .cluster import ClusterScheduler, WorkerPool

WORKER_MODULE = "parallelmap.backends.mpi_worker"

MPI_AVAILABLE = importlib.util.find_spec("mpi4py") is not None


def load_mpi():
    """
    Import and return mpi4py.MPI. The import is deferred to session start because importing mpi4py initializes MPI in the calling process.
    """
    if not MPI_AVAILABLE:
        raise ResourceError(
            "mpi4py is not available. To enable MPI mode, install mpi4py: pip install mpi4py")
    from mpi4py import MPI
    return MPI


def detect_cpus() -> int:
    """
    Number of workers that fit into the MPI universe next to the master.

    Returns:
        int: max(1, universe size - 1).
    """
    MPI = load_mpi()
    universe = MPI.COMM_WORLD.Get_attr(MPI.UNIVERSE_SIZE)
    if not universe:
        universe = MPI.COMM_WORLD.Get_size()
    return max(1, int(universe) - 1)


class MPIWorkerPool(WorkerPool):
    """
    Workers are the ranks 0 .. size - 1 of the remote group of an intercommunicator. any_source and status_factory are MPI.ANY_SOURCE and MPI.Status for a real communicator.
    """

    def __init__(self, comm, size: int, any_source: int, status_factory) -> None:
        self.comm = comm
        self.size = size
        self.any_source = any_source
        self.status_factory = status_factory
        self.closed = False

    @property
    def n_workers(self) -> int:
        return self.size

    def send(self, worker: int, message: Any) -> None:
        self.comm.send(cloudpickle.dumps(message), dest=worker)

    def recv(self, worker: int) -> Any:
        return cloudpickle.loads(self.comm.recv(source=worker))

    def recv_any(self, pending: Set[int]) -> Tuple[int, Any]:
        status = self.status_factory()
        data = self.comm.recv(source=self.any_source, status=status)
        return status.Get_source(), cloudpickle.loads(data)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for worker in range(self.size):
            self.comm.send(cloudpickle.dumps(("stop",)), dest=worker)
        self.comm.Disconnect()


class MPIHandle(BackendHandle):

    def __init__(self, pool: MPIWorkerPool, scheduler: ClusterScheduler,
                 base_seed: Optional[int]) -> None:
        super().__init__()
        self.pool = pool
        self.scheduler = scheduler
        self.base_seed = base_seed


class MPIProvider(BackendProvider):

    mode = Mode.MPI

    def spawn(self, n_workers: int) -> MPIWorkerPool:
        MPI = load_mpi()
        comm = MPI.COMM_SELF.Spawn(sys.executable, args=["-m", WORKER_MODULE],
                                   maxprocs=n_workers)
        return MPIWorkerPool(comm, n_workers, MPI.ANY_SOURCE, MPI.Status)

    def create(self) -> MPIHandle:
        pool = self.spawn(self.config.cpus)
        scheduler = ClusterScheduler(pool, load_balancing=self.config.load_balancing)
        handle = MPIHandle(pool, scheduler, None)

        if self.config.reproducible:
            handle.base_seed = draw_base_seed()
            try:
                scheduler.seed(handle.base_seed)
            except Exception:
                self.destroy(handle)
                raise

        self.logger.debug(f"Spawned {self.config.cpus} MPI workers")
        return handle

    def push(self, handle: MPIHandle, staged: StagedItems) -> None:
        handle.scheduler.push(staged)

    def execute(self, handle: MPIHandle, batch: TaskBatch) -> List[TaskOutcome]:
        return handle.scheduler.execute(batch)

    def destroy(self, handle: MPIHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        handle.pool.close()
