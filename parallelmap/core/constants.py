#!/usr/bin/env python3

"""
Shared constants for the parallelmap.core package.

Place commonly reused names, directory prefixes and messages here to avoid
duplication across the session, dispatcher and backend modules.
"""

from enum import Enum


class Mode(Enum):
    """
    Parallelization backend family selected for a session.

    Attributes:
        LOCAL (str): Sequential application in the calling process.
        MULTIPROCESS (str): Fork-based worker processes created per map call.
        SOCKET (str): Persistent worker pool connected over TCP.
        MPI (str): Persistent worker pool spawned through MPI.
        BATCHQUEUE (str): Jobs registered in a file registry and submitted to a queue.
    """
    LOCAL = "local"
    MULTIPROCESS = "multiprocess"
    SOCKET = "socket"
    MPI = "mpi"
    BATCHQUEUE = "batchqueue"

    @classmethod
    def parse(cls, value) -> 'Mode':
        """
        Convert a mode name or Mode member into a Mode member. Names are matched case-insensitively and a few historical aliases ("multicore", "batchjobs", "batchtools") are accepted so that option files written for older tooling keep working. Unknown names raise ValueError, which callers translate into a ConfigurationError.

        Parameters:
            value (str or Mode): Mode name or member.

        Returns:
            Mode: Matching enumeration member.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = MODE_ALIASES.get(name, name)
        return cls(name)


class SessionStatus(Enum):
    """Lifecycle state of the parallelization session."""
    STOPPED = "stopped"
    STARTED = "started"


MODE_ALIASES = {
    "multicore": "multiprocess",
    "batchjobs": "batchqueue",
    "batchtools": "batchqueue",
}

DEFAULT_LEVEL_OWNER = "custom"

LOG_DIR_PREFIX = "parallelMap_log_"
REGISTRY_DIR_PREFIX = "parallelMap_batchqueue_reg_"

LOGGER_NAME = "parallelmap"

AUTHKEY_ENV = "PARALLELMAP_AUTHKEY"

SEED_RANGE = (1, 100000)

LOST_WORKER_TYPE = "WorkerLost"

NOT_STOPPED_MSG = "Parallelization was not stopped, doing it now."
LOCAL_CPUS_MSG = "Setting {cpus} cpus makes no sense for local mode!"
LOCAL_LOGGING_MSG = "Logging not supported for local mode!"
SOCKET_CPUS_HOSTS_MSG = "You cannot set both cpus and hosts in socket mode!"
UNREGISTERED_LEVEL_MSG = (
    "Selected level='{level}' not registered! This is likely an error! "
    "Note that you can also register custom levels yourself to get rid of "
    "this warning, see parallel_register_levels."
)
