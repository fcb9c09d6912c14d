#!/usr/bin/env python3

"""
parallelmap - Parallel map with a process-wide session and level gating

Calling code maps functions with parallel_map and tags call sites with levels; the user of that code decides whether and how mapping runs in parallel by starting a session in local, multiprocess, socket, mpi or batchqueue mode.

Date: November 2025
Version: 1.0.0
"""

from .core import (
    Mode, SessionStatus,
    ParallelMapError, ConfigurationError, ResourceError, StagingError,
    TaskError, TaskFailure, UnregisteredLevelWarning, is_failure,
    ParallelMapOptions, set_default_options, get_default_options,
    reset_default_options, load_default_options,
    parallel_register_levels, parallel_get_registered_levels,
    get_exported, task_rng, parallel_map,
    parallel_start, parallel_start_local, parallel_start_multiprocess,
    parallel_start_socket, parallel_start_mpi, parallel_start_batchqueue,
    parallel_stop, parallel_session, parallel_export, parallel_library,
    parallel_source, parallel_get_options, parallel_show_options,
)

__version__ = "1.0.0"

__all__ = [
    '__version__',
    'Mode', 'SessionStatus',
    'ParallelMapError', 'ConfigurationError', 'ResourceError', 'StagingError',
    'TaskError', 'TaskFailure', 'UnregisteredLevelWarning', 'is_failure',
    'ParallelMapOptions', 'set_default_options', 'get_default_options',
    'reset_default_options', 'load_default_options',
    'parallel_register_levels', 'parallel_get_registered_levels',
    'get_exported', 'task_rng', 'parallel_map',
    'parallel_start', 'parallel_start_local', 'parallel_start_multiprocess',
    'parallel_start_socket', 'parallel_start_mpi', 'parallel_start_batchqueue',
    'parallel_stop', 'parallel_session', 'parallel_export', 'parallel_library',
    'parallel_source', 'parallel_get_options', 'parallel_show_options',
]
