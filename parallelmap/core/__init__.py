#!/usr/bin/env python3

"""
parallelmap Core Package

This package provides the session lifecycle, the dispatcher, level gating, staging of exports, modules and source files, reproducible seeding, and the configuration, logging, storage and monitoring utilities shared by the backends.

Date: November 2025
Version: 1.0.0
"""

from .constants import Mode, SessionStatus
from .exceptions import (
    ParallelMapError, ConfigurationError, ResourceError, StagingError,
    TaskError, TaskFailure, UnregisteredLevelWarning, is_failure
)
from .utils_config import (
    ParallelMapOptions, SessionSettings, set_default_options, get_default_options,
    reset_default_options, load_default_options
)
from .utils_logger import PMLogger, get_logger
from .utils_file import StorageManager
from .utils_monitor import PerformanceMonitor
from .utils_parser import ArgumentParser
from .levels import parallel_register_levels, parallel_get_registered_levels
from .staging import get_exported
from .seeding import task_rng
from .session import Session, get_session
from .dispatcher import parallel_map
from .api import (
    parallel_start, parallel_start_local, parallel_start_multiprocess,
    parallel_start_socket, parallel_start_mpi, parallel_start_batchqueue,
    parallel_stop, parallel_session, parallel_export, parallel_library,
    parallel_source, parallel_get_options, parallel_show_options
)

__all__ = [
    'Mode', 'SessionStatus',
    'ParallelMapError', 'ConfigurationError', 'ResourceError', 'StagingError',
    'TaskError', 'TaskFailure', 'UnregisteredLevelWarning', 'is_failure',
    'ParallelMapOptions', 'SessionSettings', 'set_default_options', 'get_default_options',
    'reset_default_options', 'load_default_options',
    'PMLogger', 'get_logger', 'StorageManager', 'PerformanceMonitor', 'ArgumentParser',
    'parallel_register_levels', 'parallel_get_registered_levels',
    'get_exported', 'task_rng', 'Session', 'get_session', 'parallel_map',
    'parallel_start', 'parallel_start_local', 'parallel_start_multiprocess',
    'parallel_start_socket', 'parallel_start_mpi', 'parallel_start_batchqueue',
    'parallel_stop', 'parallel_session', 'parallel_export', 'parallel_library',
    'parallel_source', 'parallel_get_options', 'parallel_show_options',
]
