#!/usr/bin/env python3

"""
MPI worker entry point.

Spawned by the MPI backend as ``python -m parallelmap.backends.mpi_worker``. The worker talks to the master (rank 0 of the parent intercommunicator) until told to stop, then disconnects.
"""

import sys

from mpi4py import MPI

from .worker import MPIChannel, WorkerRuntime


def main() -> int:
    comm = MPI.Comm.Get_parent()
    if comm == MPI.COMM_NULL:
        print("parallelmap MPI worker must be spawned by an MPI master", file=sys.stderr)
        return 2

    runtime = WorkerRuntime(MPIChannel(comm, peer=0))
    runtime.serve()
    comm.Disconnect()
    return 0


if __name__ == "__main__":
    sys.exit(main())
