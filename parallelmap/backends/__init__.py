"""
parallelmap.backends

Backend providers, one per parallel mode, behind the create / push / execute / destroy contract of base.BackendProvider. Provider classes are looked up by mode so that the session never imports mode specific code directly.
"""

from typing import Type

from ..core.constants import Mode
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome, run_task
from .batchqueue import BatchQueueProvider
from .local import LocalProvider
from .mpi import MPIProvider
from .mpi import detect_cpus as detect_mpi_cpus
from .multiprocess import MultiProcessProvider
from .multiprocess import detect_cpus as detect_local_cpus
from .socket import SocketProvider

PROVIDERS = {
    Mode.LOCAL: LocalProvider,
    Mode.MULTIPROCESS: MultiProcessProvider,
    Mode.SOCKET: SocketProvider,
    Mode.MPI: MPIProvider,
    Mode.BATCHQUEUE: BatchQueueProvider,
}


def provider_for(mode) -> Type[BackendProvider]:
    return PROVIDERS[Mode.parse(mode)]


def detect_cpus(mode) -> int:
    """
    Default worker count of a mode: the MPI universe size minus one for mpi, the number of CPUs of the host otherwise.
    """
    if Mode.parse(mode) is Mode.MPI:
        return detect_mpi_cpus()
    return detect_local_cpus()


__all__ = [
    'BackendHandle', 'BackendProvider', 'TaskBatch', 'TaskOutcome', 'run_task',
    'LocalProvider', 'MultiProcessProvider', 'SocketProvider', 'MPIProvider',
    'BatchQueueProvider', 'PROVIDERS', 'provider_for', 'detect_cpus',
]
