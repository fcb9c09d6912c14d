#!/usr/bin/env python3
"""
parallelmap Command-Line Interface Tests

Tests for the argument parser factory and the two CLI commands: options,
which prints the resolved defaults with command-line overrides and can save
them as an option file, and cleanup, which removes log directories and batch
queue registries from a storage directory.

Date: November 2025
Version: 1.0.0
"""

import os
import unittest

import pytest

from parallelmap.cli import main
from parallelmap.core.utils_config import ParallelMapOptions
from parallelmap.core.utils_file import StorageManager
from parallelmap.core.utils_parser import ArgumentParser


class TestArgumentParser(unittest.TestCase):
    """
    Tests for the ArgumentParser factory.
    """

    def setUp(self) -> None:
        self.parser = ArgumentParser.create_parser()

    def test_command_is_required(self) -> None:
        with self.assertRaises(SystemExit):
            self.parser.parse_args([])

    def test_options_overrides(self) -> None:
        args = self.parser.parse_args(['options', '--mode', 'socket', '--hosts', 'a', 'b',
                                       '--no-reproducible', '--load-balancing'])
        options = ArgumentParser.parse_args_to_options(args)

        self.assertEqual(options.mode, 'socket')
        self.assertEqual(options.hosts, ['a', 'b'])
        self.assertFalse(options.reproducible)
        self.assertTrue(options.load_balancing)
        self.assertFalse(options.logging)

    def test_invalid_mode_rejected(self) -> None:
        with self.assertRaises(SystemExit):
            self.parser.parse_args(['options', '--mode', 'threads'])

    def test_cleanup_requires_storagedir(self) -> None:
        with self.assertRaises(SystemExit):
            self.parser.parse_args(['cleanup'])


def test_options_prints_defaults(capsys):
    assert main(['options']) == 0
    out = capsys.readouterr().out
    assert "mode" in out
    assert "local" in out
    assert "reproducible" in out


def test_options_save_and_reload(tmp_path, capsys):
    """
    Saving with overrides writes an option file that the next invocation loads as its defaults.
    """
    saved = tmp_path / "site.yaml"
    assert main(['options', '--mode', 'multiprocess', '--cpus', '3', '--save', str(saved)]) == 0

    loaded = ParallelMapOptions.load_from_file(str(saved))
    assert loaded.mode == 'multiprocess'
    assert loaded.cpus == 3

    capsys.readouterr()
    assert main(['options', '--config', str(saved), '--logging']) == 0
    out = capsys.readouterr().out
    assert "multiprocess" in out
    line = [line for line in out.splitlines() if line.startswith("logging")][0]
    assert line.split()[-1] == "True"


def test_options_invalid_values(tmp_path):
    assert main(['options', '--cpus', '0']) == 1
    assert main(['options', '--config', str(tmp_path / "missing.yaml")]) == 1


def test_cleanup(storagedir):
    StorageManager.create_log_dir(storagedir, 1)
    StorageManager.create_log_dir(storagedir, 2)
    registry = StorageManager.new_registry_dir(storagedir)
    keep = os.path.join(storagedir, "results")
    os.makedirs(keep)

    assert main(['cleanup', '--storagedir', storagedir, '--logs-only']) == 0
    assert StorageManager.find_log_dirs(storagedir) == []
    assert os.path.isdir(registry)

    assert main(['cleanup', '--storagedir', storagedir]) == 0
    assert not os.path.exists(registry)
    assert os.path.isdir(keep)


def test_cleanup_dry_run(storagedir, capsys):
    log_dir = StorageManager.create_log_dir(storagedir, 1)
    assert main(['cleanup', '--storagedir', storagedir, '--dry-run']) == 0
    assert os.path.basename(log_dir) in capsys.readouterr().out
    assert os.path.isdir(log_dir)


def test_cleanup_missing_storagedir(tmp_path):
    assert main(['cleanup', '--storagedir', str(tmp_path / "missing")]) == 1


@pytest.mark.parametrize("argv", [['--help'], ['options', '--help']])
def test_help_exits_cleanly(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 0
