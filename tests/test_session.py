#!/usr/bin/env python3
"""
parallelmap Session Lifecycle Tests

Tests for the process-wide session state machine: start and stop transitions,
counter resets, automatic stop of a running parallel session, validation
failures that must leave the session stopped, level registry warnings, the
parallel_session context manager and option introspection.

Date: November 2025
Version: 1.0.0
"""

import os
import warnings

import pytest

from parallelmap import (
    ConfigurationError, ResourceError, SessionStatus, UnregisteredLevelWarning,
    parallel_get_options, parallel_map, parallel_register_levels, parallel_session,
    parallel_show_options, parallel_start, parallel_start_local, parallel_start_multiprocess,
    parallel_stop, set_default_options
)
from parallelmap.backends.multiprocess import fork_supported
from parallelmap.core import session as session_module
from parallelmap.core.constants import Mode
from parallelmap.core.session import get_session

requires_fork = pytest.mark.skipif(not fork_supported(), reason="fork start method not available")


def test_session_is_singleton():
    assert get_session() is get_session()


def test_start_and_stop_local():
    session = get_session()
    assert session.status is SessionStatus.STOPPED

    settings = parallel_start_local(show_info=False)
    assert session.status is SessionStatus.STARTED
    assert settings.mode is Mode.LOCAL
    assert session.nesting_depth == 0
    assert session.next_map == 1
    assert session.handle is not None

    parallel_stop()
    assert session.status is SessionStatus.STOPPED
    assert session.handle is None
    assert session.provider is None


def test_stop_is_idempotent():
    parallel_stop()
    parallel_stop()
    parallel_start(mode="local", show_info=False)
    parallel_stop()
    parallel_stop()
    assert get_session().status is SessionStatus.STOPPED


def test_restart_local_is_silent():
    parallel_start_local(show_info=False)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        parallel_start_local(show_info=False, suppress_local_errors=True)
    assert get_session().settings.backend.suppress_local_errors is True


@requires_fork
def test_restart_parallel_session_warns(storagedir):
    """
    Starting while a parallel session runs stops it first with a warning; the new session starts with fresh counters.
    """
    parallel_start_multiprocess(cpus=2, storagedir=storagedir, show_info=False)
    first_handle = get_session().handle
    get_session().next_map = 5

    with pytest.warns(UserWarning, match="Parallelization was not stopped"):
        parallel_start_local(show_info=False)

    assert first_handle.closed
    assert get_session().mode is Mode.LOCAL
    assert get_session().next_map == 1


def test_local_with_cpus_fails_and_session_stays_stopped():
    with pytest.raises(ConfigurationError, match="makes no sense for local mode"):
        parallel_start(mode="local", cpus=2)
    assert get_session().status is SessionStatus.STOPPED


def test_invalid_restart_keeps_running_session(storagedir):
    """
    Options are validated before the running session is stopped, so a rejected start leaves the previous session in place.
    """
    parallel_start_local(show_info=False, suppress_local_errors=True)
    session = get_session()
    handle = session.handle

    with pytest.raises(ConfigurationError, match="both cpus and hosts"):
        parallel_start(mode="socket", cpus=2, hosts=["localhost"], storagedir=storagedir)

    assert session.status is SessionStatus.STARTED
    assert session.handle is handle
    assert session.settings.backend.suppress_local_errors is True


def test_local_shortcut_ignores_default_cpus():
    set_default_options(cpus=4, mode="multiprocess")
    settings = parallel_start_local(show_info=False)
    assert settings.mode is Mode.LOCAL
    assert settings.cpus is None


def test_unwritable_storagedir(tmp_path):
    with pytest.raises(ResourceError, match="does not exist"):
        parallel_start(mode="socket", storagedir=str(tmp_path / "missing"), show_info=False)
    assert get_session().status is SessionStatus.STOPPED


def test_unregistered_level_warns_but_starts():
    with pytest.warns(UnregisteredLevelWarning, match="not registered"):
        parallel_start(mode="local", level="test_session.unknown", show_info=False)
    assert get_session().status is SessionStatus.STARTED


def test_registered_level_does_not_warn():
    parallel_register_levels("test_session", ["known"])
    with warnings.catch_warnings():
        warnings.simplefilter("error", UnregisteredLevelWarning)
        parallel_start(mode="local", level="test_session.known", show_info=False)
    assert get_session().settings.level == "test_session.known"


def test_mpi_without_mpi4py(monkeypatch, storagedir):
    monkeypatch.setattr(session_module, "MPI_AVAILABLE", False)
    with pytest.raises(ResourceError, match="mpi4py"):
        parallel_start(mode="mpi", cpus=2, storagedir=storagedir)
    assert get_session().status is SessionStatus.STOPPED


def test_multiprocess_without_fork(monkeypatch, storagedir):
    monkeypatch.setattr(session_module, "fork_supported", lambda: False)
    with pytest.raises(ResourceError, match="fork"):
        parallel_start(mode="multiprocess", cpus=2, storagedir=storagedir)
    assert get_session().status is SessionStatus.STOPPED


def test_backend_creation_failure_leaves_session_stopped(monkeypatch, storagedir):
    from parallelmap.backends.local import LocalProvider

    def failing_create(self):
        raise ResourceError("no workers")

    monkeypatch.setattr(LocalProvider, "create", failing_create)
    with pytest.raises(ResourceError, match="no workers"):
        parallel_start_local(show_info=False)
    assert get_session().status is SessionStatus.STOPPED


def test_stop_logs_destroy_errors(monkeypatch, caplog):
    parallel_start_local(show_info=False)
    session = get_session()

    def failing_destroy(handle):
        raise RuntimeError("cannot release")

    monkeypatch.setattr(session.provider, "destroy", failing_destroy)
    parallel_stop()
    assert session.status is SessionStatus.STOPPED
    assert "cannot release" in caplog.text


def test_stop_clears_staging(storagedir):
    parallel_start(mode="socket", cpus=1, storagedir=storagedir, show_info=False)
    session = get_session()
    session.staging.stage_export("value", 1)
    parallel_stop()
    assert session.staging.is_empty()


def test_parallel_session_stops_on_error():
    with pytest.raises(KeyError):
        with parallel_session(mode="local", show_info=False) as settings:
            assert settings.mode is Mode.LOCAL
            assert get_session().is_started
            raise KeyError("abort")
    assert get_session().status is SessionStatus.STOPPED


def test_startup_message(caplog, storagedir):
    with caplog.at_level("INFO", logger="parallelmap"):
        parallel_start(mode="socket", cpus=1, storagedir=storagedir, show_info=True)
        parallel_stop()
    assert "Starting parallelization in mode=socket with cpus=1." in caplog.text
    assert "Stopped parallelization. All cleaned up." in caplog.text


def test_get_options():
    set_default_options(show_info=False)
    assert parallel_get_options().show_info is False

    parallel_start_local(show_info=True)
    options = parallel_get_options()
    assert options.mode == "local"
    assert options.show_info is True
    assert options.storagedir == os.path.realpath(os.getcwd())


def test_show_options(caplog):
    with caplog.at_level("INFO", logger="parallelmap"):
        parallel_show_options()
    assert "session stopped" in caplog.text
    assert "reproducible" in caplog.text


def test_stop_drops_dispatch_timings():
    parallel_start_local(show_info=False)
    session = get_session()
    parallel_map(lambda x: x + 1, [1, 2])
    assert len(session.monitor.get_summary()) == 1

    parallel_stop()
    assert session.monitor.get_summary() == {}
