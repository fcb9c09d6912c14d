#!/usr/bin/env python3
"""
parallelmap Configuration Unit Tests

This module tests the ParallelMapOptions dataclass, the process-wide default
option store and the construction of per-mode backend records. The tests cover
validation in __post_init__, dictionary and YAML serialization, the layering of
explicit arguments over stored defaults over built-in defaults, and the mode
invariants enforced when session settings are built (no cpus or logging in
local mode, cpus and hosts mutually exclusive in socket mode, worker count
detection for multiprocess and mpi mode).

Date: November 2025
Version: 1.0.0
"""

import os
import unittest
import tempfile

import pytest
import yaml

from parallelmap.core.constants import Mode
from parallelmap.core.exceptions import ConfigurationError
from parallelmap.core.utils_config import (
    ParallelMapOptions, SocketConfig, LocalConfig, MultiProcessConfig, BatchQueueConfig,
    set_default_options, get_default_options, reset_default_options, load_default_options,
    resolve_options, build_session_settings
)


def fixed_cpus(mode: Mode) -> int:
    return 7


class TestParallelMapOptions(unittest.TestCase):
    """
    Tests for ParallelMapOptions validation and serialization.
    """

    def test_default_initialization(self) -> None:
        """
        Verify the built-in defaults: local mode, no worker count, logging off, informational messages on and reproducible seeding on.
        """
        options = ParallelMapOptions()
        self.assertEqual(options.mode, "local")
        self.assertIsNone(options.cpus)
        self.assertIsNone(options.hosts)
        self.assertFalse(options.logging)
        self.assertTrue(options.show_info)
        self.assertTrue(options.reproducible)
        self.assertFalse(options.suppress_local_errors)

    def test_mode_names_are_normalized(self) -> None:
        self.assertEqual(ParallelMapOptions(mode="MultiProcess").mode, "multiprocess")
        self.assertEqual(ParallelMapOptions(mode="multicore").mode, "multiprocess")
        self.assertEqual(ParallelMapOptions(mode=Mode.SOCKET).mode, "socket")

    def test_invalid_values(self) -> None:
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions(mode="threads")
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions(cpus=0)
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions(cpus=True)
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions(hosts=[])
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions(level=3)

    def test_configuration_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            ParallelMapOptions(cpus=-1)

    def test_single_host_string(self) -> None:
        self.assertEqual(ParallelMapOptions(hosts="node1").hosts, ["node1"])

    def test_to_dict_and_from_dict(self) -> None:
        options = ParallelMapOptions(mode="socket", cpus=2, level="custom.a")
        restored = ParallelMapOptions.from_dict(options.to_dict())
        self.assertEqual(restored, options)

    def test_from_dict_rejects_unknown_keys(self) -> None:
        with self.assertRaises(ConfigurationError):
            ParallelMapOptions.from_dict({"mode": "local", "workers": 3})

    def test_save_and_load_file(self) -> None:
        """
        Verify that options written with save_to_file are plain YAML and come back unchanged through load_from_file.
        """
        options = ParallelMapOptions(mode="batchqueue", resources={"walltime": 60, "memory": 2048},
                                     submit_command="sbatch --wrap \"{command}\"")
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "options.yaml")
            options.save_to_file(path)

            with open(path) as f:
                raw = yaml.safe_load(f)
            self.assertEqual(raw["mode"], "batchqueue")

            loaded = ParallelMapOptions.load_from_file(path)
            self.assertEqual(loaded, options)

    def test_load_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "empty.yaml")
            open(path, "w").close()
            self.assertEqual(ParallelMapOptions.load_from_file(path), ParallelMapOptions())


class TestDefaultOptionStore(unittest.TestCase):

    def tearDown(self) -> None:
        reset_default_options()

    def test_explicit_over_default_over_builtin(self) -> None:
        """
        Verify the resolution order: an explicit argument wins over the stored default, which wins over the built-in default.
        """
        set_default_options(mode="multiprocess", cpus=3)

        resolved = resolve_options()
        self.assertEqual(resolved.mode, "multiprocess")
        self.assertEqual(resolved.cpus, 3)
        self.assertFalse(resolved.logging)

        resolved = resolve_options(cpus=5, mode=None)
        self.assertEqual(resolved.cpus, 5)
        self.assertEqual(resolved.mode, "multiprocess")

    def test_unset_ignores_stored_default(self) -> None:
        set_default_options(cpus=3)
        self.assertIsNone(resolve_options(unset=("cpus",)).cpus)

    def test_none_removes_default(self) -> None:
        set_default_options(cpus=3)
        set_default_options(cpus=None)
        self.assertIsNone(get_default_options().cpus)

    def test_invalid_default_is_rejected_and_store_unchanged(self) -> None:
        set_default_options(cpus=2)
        with self.assertRaises(ConfigurationError):
            set_default_options(cpus=0)
        with self.assertRaises(ConfigurationError):
            set_default_options(speed="fast")
        self.assertEqual(get_default_options().cpus, 2)

    def test_storagedir_falls_back_to_cwd(self) -> None:
        self.assertEqual(resolve_options().storagedir, os.getcwd())

    def test_load_default_options(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "defaults.yaml")
            with open(path, "w") as f:
                yaml.safe_dump({"mode": "socket", "cpus": 4}, f)

            defaults = load_default_options(path)
            self.assertEqual(defaults.mode, "socket")
            self.assertEqual(defaults.cpus, 4)
            self.assertTrue(defaults.show_info)
            self.assertEqual(resolve_options().cpus, 4)


def test_local_rejects_cpus_and_logging():
    with pytest.raises(ConfigurationError, match="makes no sense for local mode"):
        build_session_settings(resolve_options(mode="local", cpus=2), fixed_cpus)
    with pytest.raises(ConfigurationError, match="Logging not supported"):
        build_session_settings(resolve_options(mode="local", logging=True), fixed_cpus)


def test_local_record():
    settings = build_session_settings(resolve_options(suppress_local_errors=True), fixed_cpus)
    assert settings.mode is Mode.LOCAL
    assert settings.backend == LocalConfig(suppress_local_errors=True)
    assert settings.cpus is None
    assert settings.logging is False


def test_socket_cpus_and_hosts_are_exclusive():
    with pytest.raises(ConfigurationError, match="cannot set both cpus and hosts"):
        build_session_settings(resolve_options(mode="socket", cpus=2, hosts=["a"]), fixed_cpus)


def test_socket_defaults_to_one_worker():
    settings = build_session_settings(resolve_options(mode="socket"), fixed_cpus)
    assert isinstance(settings.backend, SocketConfig)
    assert settings.backend.cpus == 1
    assert settings.cpus == 1


def test_socket_hosts_define_worker_count():
    settings = build_session_settings(resolve_options(mode="socket", hosts=["a", "b", "a"]),
                                      fixed_cpus, connect_timeout=5.0)
    assert settings.backend.hosts == ("a", "b", "a")
    assert settings.backend.n_workers == 3
    assert settings.backend.connect_timeout == 5.0


def test_cpus_detected_for_multiprocess_and_mpi():
    settings = build_session_settings(resolve_options(mode="multiprocess"), fixed_cpus)
    assert isinstance(settings.backend, MultiProcessConfig)
    assert settings.cpus == 7
    assert build_session_settings(resolve_options(mode="mpi"), fixed_cpus).cpus == 7
    assert build_session_settings(resolve_options(mode="mpi", cpus=2), fixed_cpus).cpus == 2


def test_batchqueue_record(tmp_path):
    options = resolve_options(mode="batchqueue", storagedir=str(tmp_path),
                              resources={"walltime": 10}, reproducible=False)
    settings = build_session_settings(options, fixed_cpus, poll_interval=0.05,
                                      max_concurrent_jobs=2)
    assert isinstance(settings.backend, BatchQueueConfig)
    assert settings.backend.resources == {"walltime": 10}
    assert settings.backend.poll_interval == 0.05
    assert settings.backend.max_concurrent_jobs == 2
    assert settings.backend.reproducible is False


def test_unknown_backend_argument():
    with pytest.raises(ConfigurationError, match="Unknown backend argument"):
        build_session_settings(resolve_options(mode="multiprocess"), fixed_cpus, turbo=True)
