#!/usr/bin/env python3

"""
parallelmap Session Lifecycle

This module owns the single process-wide parallelization session. The session holds the resolved settings of the last start call, its lifecycle status, the nesting counter used by the dispatcher to decide whether a map call is the outermost one, the map invocation counter that numbers log directories, the backend provider with the handle it created, and the pending export staging set. Starting a session while one is running in a parallel mode stops the running one first with a warning; a running local session is replaced silently. Stopping is idempotent and never raises, which makes it safe to call from cleanup paths, and it is registered with atexit so that worker processes never outlive the master.

Classes:
    Session: Lifecycle state machine of the process-wide session.

Functions:
    get_session: Return the process-wide session, creating it on first use.

Date: November 2025
Version: 1.0.0
"""

import atexit
import warnings
from typing import Any, Dict, Iterable, Optional

from .constants import (
    Mode, SessionStatus, NOT_STOPPED_MSG, UNREGISTERED_LEVEL_MSG
)
from .exceptions import ResourceError, UnregisteredLevelWarning
from .levels import get_level_registry
from .staging import ExportStaging
from .utils_config import SessionSettings, build_session_settings, resolve_options
from .utils_file import StorageManager
from .utils_logger import ensure_console_logging, get_logger
from .utils_monitor import PerformanceMonitor
from ..backends import detect_cpus, provider_for
from ..backends.base import BackendHandle, BackendProvider
from ..backends.mpi import MPI_AVAILABLE
from ..backends.multiprocess import fork_supported


class Session:
    """
    Process-wide parallelization session.

    Attributes:
        settings (Optional[SessionSettings]): Settings of the current or last session.
        status (SessionStatus): STOPPED or STARTED.
        nesting_depth (int): Number of map calls currently executing, 0 outside any call.
        next_map (int): Number of the next parallel dispatch, used for log directories.
        provider (Optional[BackendProvider]): Provider of the running mode.
        handle (Optional[BackendHandle]): Backend handle owned until stop.
        staging (ExportStaging): Exports, modules and sources not yet pushed.
        monitor (PerformanceMonitor): Timings of the session's dispatches.
    """

    def __init__(self) -> None:
        self.settings: Optional[SessionSettings] = None
        self.status = SessionStatus.STOPPED
        self.nesting_depth = 0
        self.next_map = 1
        self.provider: Optional[BackendProvider] = None
        self.handle: Optional[BackendHandle] = None
        self.staging = ExportStaging()
        self.monitor = PerformanceMonitor(get_logger("session"))
        self.logger = get_logger("session")

    @property
    def is_started(self) -> bool:
        return self.status is SessionStatus.STARTED

    @property
    def mode(self) -> Mode:
        if self.is_started:
            return self.settings.mode
        return Mode.LOCAL

    def start(self, backend_extra: Optional[Dict[str, Any]] = None,
              unset: Iterable[str] = (), **explicit: Any) -> SessionSettings:
        """
        Start a session, stopping a running one first. Options are resolved from the explicit arguments, the process-wide defaults and the built-in defaults, validated, and turned into the backend handle. The session only becomes STARTED after the handle was created; invalid options raise before a running session is touched, and any later error leaves the session STOPPED.

        Parameters:
            backend_extra (Optional[Dict[str, Any]]): Mode-specific arguments such as connect_timeout or poll_interval.
            unset (Iterable[str]): Options that ignore the process-wide defaults.
            **explicit: Start options, None meaning unset.

        Returns:
            SessionSettings: Settings of the started session.

        Raises:
            ConfigurationError: Invalid or contradictory options.
            ResourceError: Unwritable storage directory, unsupported platform or unreachable workers.
        """
        options = resolve_options(unset=unset, **explicit)
        mode = Mode.parse(options.mode)

        if options.level is not None and not get_level_registry().is_registered(options.level):
            warnings.warn(UNREGISTERED_LEVEL_MSG.format(level=options.level),
                          UnregisteredLevelWarning, stacklevel=3)

        if mode is Mode.MULTIPROCESS and not fork_supported():
            raise ResourceError("Multiprocess mode is not supported on this platform (no fork).")
        if mode is Mode.MPI and not MPI_AVAILABLE:
            raise ResourceError("MPI mode requires mpi4py: pip install mpi4py")

        options.storagedir = StorageManager.check_writable(options.storagedir)
        settings = build_session_settings(options, detect_cpus, **(backend_extra or {}))

        if self.is_started:
            if self.settings.mode is not Mode.LOCAL:
                warnings.warn(NOT_STOPPED_MSG)
                self.logger.warning(NOT_STOPPED_MSG)
            self.stop()

        if settings.show_info:
            ensure_console_logging()
            self.logger.info(self._startup_message(settings))

        if settings.logging:
            removed = StorageManager.delete_all_log_dirs(settings.storagedir)
            if removed:
                self.logger.debug(f"Deleted {removed} log directories of earlier sessions")

        provider = provider_for(mode)(settings.backend)
        handle = provider.create()

        self.settings = settings
        self.provider = provider
        self.handle = handle
        self.staging.clear()
        self.nesting_depth = 0
        self.next_map = 1
        self.status = SessionStatus.STARTED
        return settings

    @staticmethod
    def _startup_message(settings: SessionSettings) -> str:
        hosts = getattr(settings.backend, "hosts", None)
        if hosts:
            workers = f"hosts={','.join(hosts)}"
        elif settings.cpus is not None:
            workers = f"cpus={settings.cpus}"
        else:
            workers = "cpus=NA"
        message = f"Starting parallelization in mode={settings.mode.value} with {workers}."
        if settings.level is not None:
            message += f" Level: {settings.level}."
        return message

    def stop(self) -> None:
        """
        Stop the session: destroy the backend handle, drop pending staging and dispatch timings, and return to STOPPED. Calling it while stopped does nothing. Errors raised while destroying the handle are logged and never propagate.
        """
        if not self.is_started:
            return

        settings = self.settings
        try:
            self.provider.destroy(self.handle)
        except Exception as e:
            self.logger.error(f"Error while stopping {settings.mode.value} backend: {e}")

        self.handle = None
        self.provider = None
        self.staging.clear()
        self.monitor.reset()
        self.nesting_depth = 0
        self.status = SessionStatus.STOPPED

        if settings.show_info and settings.mode is not Mode.LOCAL:
            self.logger.info("Stopped parallelization. All cleaned up.")


_session: Optional[Session] = None


def get_session() -> Session:
    """
    Get or create the process-wide session. The same instance is returned for the lifetime of the process; stop resets its state instead of replacing it.

    Returns:
        Session: Process-wide session.
    """
    global _session
    if _session is None:
        _session = Session()
    return _session


def _stop_at_exit() -> None:
    if _session is not None:
        _session.stop()


atexit.register(_stop_at_exit)
