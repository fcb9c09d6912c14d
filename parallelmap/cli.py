#!/usr/bin/env python3

"""
parallelmap CLI Entry Point

This module provides the main entry point for the parallelmap command-line interface. The options command prints (and optionally saves) the resolved default options; the cleanup command removes per-dispatch log directories and batch queue registries left in a storage directory.

Date: November 2025
Version: 1.0.0
"""

import logging
import sys
from typing import List, Optional

from parallelmap.core.exceptions import ParallelMapError
from parallelmap.core.utils_config import load_default_options, reset_default_options
from parallelmap.core.utils_file import StorageManager
from parallelmap.core.utils_logger import PMLogger
from parallelmap.core.utils_parser import ArgumentParser


def run_options(args, logger: PMLogger) -> int:
    reset_default_options()
    if args.config:
        load_default_options(args.config)

    options = ArgumentParser.parse_args_to_options(args)
    for name, value in options.to_dict().items():
        print(f"{name:<22} {value}")

    if args.save:
        options.save_to_file(args.save)
        logger.info(f"Options saved to {args.save}")
    return 0


def run_cleanup(args, logger: PMLogger) -> int:
    storagedir = StorageManager.check_writable(args.storagedir)

    targets = StorageManager.find_log_dirs(storagedir)
    if not args.logs_only:
        targets += StorageManager.find_registry_dirs(storagedir)

    for path in targets:
        if args.dry_run:
            print(path)
        else:
            StorageManager.remove_dir(path)
            logger.debug(f"Removed {path}")

    action = "Found" if args.dry_run else "Removed"
    logger.info(f"{action} {len(targets)} director{'y' if len(targets) == 1 else 'ies'} in {storagedir}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse the command line and run the chosen command. Package errors and unreadable option files are reported on the log and turned into exit status 1.

    Parameters:
        argv (Optional[List[str]]): Arguments without the program name, sys.argv when None.

    Returns:
        int: Process exit status.
    """
    parser = ArgumentParser.create_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logger = PMLogger(name="parallelmap.cli", level=level, verbose=True)

    commands = {'options': run_options, 'cleanup': run_cleanup}
    try:
        return commands[args.command](args, logger)
    except (ParallelMapError, OSError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
