#!/usr/bin/env python3

"""
parallelmap Public Session API

This module exposes the user-facing functions that control the process-wide session: starting it in one of the five modes (through parallel_start or one of its mode shortcuts), stopping it, scoping it with a context manager, staging objects, modules and source files for the workers, and inspecting the options in effect. The functions are thin wrappers around the Session object and the staging set; they translate keyword arguments into option names and decide which staging calls reach the workers.

Functions:
    parallel_start, parallel_start_local, parallel_start_multiprocess, parallel_start_socket, parallel_start_mpi, parallel_start_batchqueue: Start a session.
    parallel_stop: Stop the session.
    parallel_session: Context manager starting and stopping a session.
    parallel_export, parallel_library, parallel_source: Stage work dependencies for the workers.
    parallel_get_options, parallel_show_options: Inspect the options in effect.

Date: November 2025
Version: 1.0.0
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .constants import Mode
from .session import get_session
from .staging import (
    bind_exports, check_export_name, import_modules, resolve_source_path, source_files
)
from .utils_config import ParallelMapOptions, SessionSettings, get_default_options
from .utils_logger import ensure_console_logging, get_logger

logger = get_logger("api")


def parallel_start(mode: Optional[str] = None, cpus: Optional[int] = None,
                   hosts: Optional[List[str]] = None, level: Optional[str] = None,
                   logging: Optional[bool] = None, storagedir: Optional[str] = None,
                   load_balancing: Optional[bool] = None, show_info: Optional[bool] = None,
                   suppress_local_errors: Optional[bool] = None,
                   reproducible: Optional[bool] = None,
                   resources: Optional[Dict[str, Any]] = None,
                   submit_command: Optional[str] = None, **backend: Any) -> SessionSettings:
    """
    Start the process-wide parallelization session. Every option left as None is taken from the process-wide defaults (set_default_options, load_default_options) and then from the built-in defaults. Starting while a parallel session is running stops it first with a warning.

    Parameters:
        mode (Optional[str]): local, multiprocess, socket, mpi or batchqueue.
        cpus (Optional[int]): Number of workers; detected for multiprocess and mpi when unset.
        hosts (Optional[List[str]]): Socket mode hosts, one worker per entry; excludes cpus.
        level (Optional[str]): Only map calls tagged with this level are parallelized.
        logging (Optional[bool]): Write per-element log files below storagedir.
        storagedir (Optional[str]): Directory for log files and batch queue registries.
        load_balancing (Optional[bool]): Dynamic scheduling, one element per idle worker.
        show_info (Optional[bool]): Log session and mapping messages.
        suppress_local_errors (Optional[bool]): Local mode only, keep failure markers in results.
        reproducible (Optional[bool]): Seed workers from the master random state.
        resources (Optional[Dict[str, Any]]): Batch queue resources for the submit template.
        submit_command (Optional[str]): Batch queue submit template, local jobs when unset.
        **backend: Mode-specific arguments (master_address, connect_timeout, poll_interval, max_concurrent_jobs).

    Returns:
        SessionSettings: Settings of the started session.

    Raises:
        ConfigurationError: Invalid or contradictory options.
        ResourceError: Storage directory not writable, mode unsupported or workers unreachable.
    """
    return get_session().start(
        backend_extra=backend, mode=mode, cpus=cpus, hosts=hosts, level=level,
        logging=logging, storagedir=storagedir, load_balancing=load_balancing,
        show_info=show_info, suppress_local_errors=suppress_local_errors,
        reproducible=reproducible, resources=resources, submit_command=submit_command)


def parallel_start_local(show_info: Optional[bool] = None,
                         suppress_local_errors: Optional[bool] = None,
                         **backend: Any) -> SessionSettings:
    return get_session().start(
        backend_extra=backend, unset=("cpus", "level", "logging"),
        mode=Mode.LOCAL.value, show_info=show_info,
        suppress_local_errors=suppress_local_errors)


def parallel_start_multiprocess(cpus: Optional[int] = None, logging: Optional[bool] = None,
                                storagedir: Optional[str] = None, level: Optional[str] = None,
                                load_balancing: Optional[bool] = None,
                                show_info: Optional[bool] = None,
                                reproducible: Optional[bool] = None,
                                **backend: Any) -> SessionSettings:
    return parallel_start(mode=Mode.MULTIPROCESS.value, cpus=cpus, logging=logging,
                          storagedir=storagedir, level=level, load_balancing=load_balancing,
                          show_info=show_info, reproducible=reproducible, **backend)


def parallel_start_socket(cpus: Optional[int] = None, hosts: Optional[List[str]] = None,
                          logging: Optional[bool] = None, storagedir: Optional[str] = None,
                          level: Optional[str] = None, load_balancing: Optional[bool] = None,
                          show_info: Optional[bool] = None,
                          reproducible: Optional[bool] = None,
                          **backend: Any) -> SessionSettings:
    """
    Start a socket session with cpus local workers or one worker per entry of hosts. Extra keyword arguments master_address (address remote workers connect back to) and connect_timeout (seconds to wait for all workers) are forwarded to the backend.
    """
    return parallel_start(mode=Mode.SOCKET.value, cpus=cpus, hosts=hosts, logging=logging,
                          storagedir=storagedir, level=level, load_balancing=load_balancing,
                          show_info=show_info, reproducible=reproducible, **backend)


def parallel_start_mpi(cpus: Optional[int] = None, logging: Optional[bool] = None,
                       storagedir: Optional[str] = None, level: Optional[str] = None,
                       load_balancing: Optional[bool] = None, show_info: Optional[bool] = None,
                       reproducible: Optional[bool] = None, **backend: Any) -> SessionSettings:
    return parallel_start(mode=Mode.MPI.value, cpus=cpus, logging=logging,
                          storagedir=storagedir, level=level, load_balancing=load_balancing,
                          show_info=show_info, reproducible=reproducible, **backend)


def parallel_start_batchqueue(resources: Optional[Dict[str, Any]] = None,
                              submit_command: Optional[str] = None,
                              logging: Optional[bool] = None, storagedir: Optional[str] = None,
                              level: Optional[str] = None, show_info: Optional[bool] = None,
                              reproducible: Optional[bool] = None,
                              **backend: Any) -> SessionSettings:
    """
    Start a batch queue session. Without submit_command every job runs as a local subprocess; with it, jobs are submitted through the template (e.g. 'sbatch --wrap "{command}"'). Extra keyword arguments poll_interval and max_concurrent_jobs are forwarded to the backend.
    """
    return parallel_start(mode=Mode.BATCHQUEUE.value, resources=resources,
                          submit_command=submit_command, logging=logging,
                          storagedir=storagedir, level=level, show_info=show_info,
                          reproducible=reproducible, **backend)


def parallel_stop() -> None:
    """Stop the session and release its workers; does nothing when no session is running."""
    get_session().stop()


@contextmanager
def parallel_session(**options: Any):
    """
    Start a session with parallel_start(**options) for the duration of the block and stop it on every exit path.

    Yields:
        SessionSettings: Settings of the started session.

    Examples:
        >>> with parallel_session(mode="multiprocess", cpus=2):
        ...     parallel_map(abs, [-1, -2])
        [1, 2]
    """
    settings = parallel_start(**options)
    try:
        yield settings
    finally:
        parallel_stop()


def _stages_for_workers(level: Optional[str]) -> bool:
    """Staging reaches the workers only in a started parallel session whose level filter admits the given level."""
    session = get_session()
    if not session.is_started or session.mode is Mode.LOCAL:
        return False
    return level is None or session.settings.level is None or level == session.settings.level


def parallel_export(level: Optional[str] = None, **objects: Any) -> List[str]:
    """
    Export objects under the given names. They are bound on the master immediately and pushed to the workers before the next parallel dispatch; inside jobs they are read with get_exported. Re-exporting a name overwrites the previous value.

    Parameters:
        level (Optional[str]): Only stage when this level is the session level (or no session level is set).
        **objects: Export names mapped to values.

    Returns:
        List[str]: Exported names.
    """
    for name in objects:
        check_export_name(name)
    bind_exports(objects)

    if _stages_for_workers(level):
        session = get_session()
        for name, value in objects.items():
            session.staging.stage_export(name, value)
        logger.debug(f"Staged export(s): {', '.join(objects)}")
    return list(objects)


def parallel_library(*modules: str, master: bool = True, level: Optional[str] = None) -> List[str]:
    """
    Import modules on the workers before the next parallel dispatch, and on the master when master is True.

    Parameters:
        *modules (str): Importable module names.
        master (bool): Also import on the master right away.
        level (Optional[str]): Only stage when this level is the session level (or no session level is set).

    Returns:
        List[str]: Module names.
    """
    if master:
        import_modules(modules)

    if _stages_for_workers(level):
        session = get_session()
        for name in modules:
            session.staging.stage_library(name)
    return list(modules)


def parallel_source(*paths: str, master: bool = True, level: Optional[str] = None) -> List[str]:
    """
    Execute Python source files on the workers before the next parallel dispatch, and on the master when master is True. Public top-level names defined by the files become available through get_exported.

    Parameters:
        *paths (str): Paths of the source files.
        master (bool): Also execute on the master right away.
        level (Optional[str]): Only stage when this level is the session level (or no session level is set).

    Returns:
        List[str]: Absolute paths of the files.
    """
    resolved = [resolve_source_path(path) for path in paths]
    if _stages_for_workers(level):
        session = get_session()
        for path in resolved:
            session.staging.stage_source(path)

    if master:
        source_files(resolved)
    return resolved


def parallel_get_options() -> ParallelMapOptions:
    """
    Return the options in effect: those the running session was started with, or the process-wide defaults when no session is running.
    """
    session = get_session()
    if session.is_started:
        return session.settings.options
    return get_default_options()


def parallel_show_options() -> None:
    session = get_session()
    options = parallel_get_options()
    ensure_console_logging()
    status = "started" if session.is_started else "stopped (defaults)"
    logger.info(f"parallelmap options, session {status}:")
    for name, value in options.to_dict().items():
        logger.info(f"  {name:<22} {value}")
