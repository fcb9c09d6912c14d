#!/usr/bin/env python3

"""
parallelmap Storage Directory Utilities

This module provides the file and directory operations used by parallelization sessions on the shared storage directory. It implements the StorageManager class with static methods for validating that the storage directory exists and is writable before a session starts, creating the uniquely numbered per-dispatch log directories (parallelMap_log_<n>), deleting log directories left behind by earlier sessions, creating randomly named batch queue registry directories so that concurrent sessions sharing one storage directory never collide, and locating or removing these directories for cleanup. Every directory the package writes under the storage directory goes through this class so that the naming scheme lives in one place.

Classes:
    StorageManager: Stateless helpers for storage directory validation, log directories and registry directories.

Date: November 2025
Version: 1.0.0
"""

import os
import shutil
import tempfile
from pathlib import Path
from typing import List

from .constants import LOG_DIR_PREFIX, REGISTRY_DIR_PREFIX
from .exceptions import ResourceError


class StorageManager:
    """
    Centralized storage directory helpers for parallelization sessions. All methods are static; the methods that modify the filesystem say so in their docstrings.
    """

    @staticmethod
    def check_writable(storagedir: str) -> str:
        """
        Validate that the storage directory exists and is writable and return its absolute path. Workers on other hosts must see the same path, so no attempt is made to create a missing directory.

        Parameters:
            storagedir (str): Storage directory path.

        Returns:
            str: Absolute path of the storage directory.

        Raises:
            ResourceError: If the directory does not exist or is not writable.
        """
        path = Path(storagedir).expanduser()

        if not path.is_dir():
            raise ResourceError(f"Storage directory does not exist: {storagedir}")

        if not os.access(path, os.W_OK | os.X_OK):
            raise ResourceError(f"Storage directory is not writable: {storagedir}")

        return str(path.resolve())

    @staticmethod
    def log_dir_path(storagedir: str, map_nr: int) -> str:
        return os.path.join(storagedir, f"{LOG_DIR_PREFIX}{map_nr}")

    @staticmethod
    def create_log_dir(storagedir: str, map_nr: int) -> str:
        """
        Create the log directory of one dispatch. Modifies the filesystem; an existing directory of the same number is emptied first so that stale element logs never mix with new ones.

        Parameters:
            storagedir (str): Storage directory path.
            map_nr (int): Map invocation number of the dispatch.

        Returns:
            str: Path of the created log directory.
        """
        log_dir = StorageManager.log_dir_path(storagedir, map_nr)
        if os.path.isdir(log_dir):
            shutil.rmtree(log_dir)
        os.makedirs(log_dir)
        return log_dir

    @staticmethod
    def find_log_dirs(storagedir: str) -> List[str]:
        path = Path(storagedir)
        if not path.is_dir():
            return []
        return sorted(str(p) for p in path.glob(f"{LOG_DIR_PREFIX}*") if p.is_dir())

    @staticmethod
    def delete_all_log_dirs(storagedir: str) -> int:
        """
        Remove every log directory left in the storage directory by earlier sessions. Modifies the filesystem.

        Parameters:
            storagedir (str): Storage directory path.

        Returns:
            int: Number of removed directories.
        """
        log_dirs = StorageManager.find_log_dirs(storagedir)
        for log_dir in log_dirs:
            shutil.rmtree(log_dir)
        return len(log_dirs)

    @staticmethod
    def new_registry_dir(storagedir: str) -> str:
        """
        Create a batch queue registry directory with a random, unique name below the storage directory. Modifies the filesystem.

        Parameters:
            storagedir (str): Storage directory path.

        Returns:
            str: Path of the new registry directory.
        """
        return tempfile.mkdtemp(prefix=REGISTRY_DIR_PREFIX, dir=storagedir)

    @staticmethod
    def find_registry_dirs(storagedir: str) -> List[str]:
        path = Path(storagedir)
        if not path.is_dir():
            return []
        return sorted(str(p) for p in path.glob(f"{REGISTRY_DIR_PREFIX}*") if p.is_dir())

    @staticmethod
    def remove_dir(path: str) -> bool:
        """
        Remove a directory tree if it exists. Modifies the filesystem.

        Parameters:
            path (str): Directory to remove.

        Returns:
            bool: True if something was removed.
        """
        if not os.path.isdir(path):
            return False
        shutil.rmtree(path)
        return True
