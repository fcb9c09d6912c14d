#!/usr/bin/env python3

"""
parallelmap Command-Line Argument Parser Utilities

This module provides the argparse factory behind the parallelmap command-line tool together with the converter that turns parsed option overrides into a ParallelMapOptions instance. The tool has two subcommands: "options" resolves the effective default options (built-in defaults, an optional YAML option file and command-line overrides, in increasing precedence), prints them and can save them as a YAML option file; "cleanup" removes log directories and batch queue registries left behind in a storage directory by sessions that were not stopped.

Classes:
    ArgumentParser: Factory class with static methods for the CLI parser and its converters.

Date: November 2025
Version: 1.0.0
"""

import argparse
from typing import Any, Dict

from .constants import Mode
from .utils_config import ParallelMapOptions, get_default_options


class ArgumentParser:
    """
    Factory for the parallelmap command-line parser. The option overrides accepted by "options" mirror the fields of ParallelMapOptions so that an option file can be produced entirely from the command line.
    """

    @staticmethod
    def create_parser() -> argparse.ArgumentParser:
        """
        Create the parallelmap parser with the options and cleanup subcommands.

        Returns:
            argparse.ArgumentParser: Configured parser; the chosen subcommand is stored in args.command.
        """
        parser = argparse.ArgumentParser(
            prog="parallelmap",
            description="Inspect parallelmap options and clean up storage directories",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Show the built-in defaults
  parallelmap options

  # Show defaults from an option file with an override, and save the result
  parallelmap options --config defaults.yaml --mode socket --cpus 4 --save site.yaml

  # Remove stale log directories and batch queue registries
  parallelmap cleanup --storagedir /scratch/me
            """
        )
        parser.add_argument('-v', '--verbose', action='store_true',
                            help='Enable debug logging')

        subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
        subparsers.required = True

        options_parser = subparsers.add_parser('options', help='Show resolved default options')
        options_parser.add_argument('--config', type=str,
                                    help='Option file (YAML format) loaded before overrides')
        options_parser.add_argument('--save', type=str, metavar='FILE',
                                    help='Write the resolved options to a YAML file')

        override_group = options_parser.add_argument_group('Option overrides')
        override_group.add_argument('--mode', type=str, choices=[m.value for m in Mode],
                                    help='Parallelization mode')
        override_group.add_argument('--cpus', type=int, help='Number of workers')
        override_group.add_argument('--hosts', type=str, nargs='+',
                                    help='Socket mode hosts, one worker per entry')
        override_group.add_argument('--level', type=str, help='Parallelization level')
        override_group.add_argument('--storagedir', type=str,
                                    help='Directory for logs and batch queue registries')
        override_group.add_argument('--submit-command', type=str,
                                    help='Batch queue submit command template')
        override_group.add_argument('--logging', action=argparse.BooleanOptionalAction,
                                    default=None, help='Per-element log files')
        override_group.add_argument('--load-balancing', action=argparse.BooleanOptionalAction,
                                    default=None, help='Dynamic scheduling')
        override_group.add_argument('--show-info', action=argparse.BooleanOptionalAction,
                                    default=None, help='Session and mapping messages')
        override_group.add_argument('--reproducible', action=argparse.BooleanOptionalAction,
                                    default=None, help='Reproducible worker seeding')

        cleanup_parser = subparsers.add_parser(
            'cleanup', help='Remove stale log directories and batch queue registries')
        cleanup_parser.add_argument('--storagedir', type=str, required=True,
                                    help='Storage directory to clean')
        cleanup_parser.add_argument('--logs-only', action='store_true',
                                    help='Keep batch queue registries')
        cleanup_parser.add_argument('--dry-run', action='store_true',
                                    help='List directories without removing them')
        return parser

    @staticmethod
    def parse_args_to_options(args: argparse.Namespace) -> ParallelMapOptions:
        """
        Convert the overrides of the options subcommand into ParallelMapOptions on top of the process-wide defaults (which include a loaded option file). Overrides that were not given keep the default.

        Parameters:
            args (argparse.Namespace): Parsed arguments of the options subcommand.

        Returns:
            ParallelMapOptions: Resolved options.
        """
        options = get_default_options().to_dict()
        overrides: Dict[str, Any] = {
            'mode': args.mode,
            'cpus': args.cpus,
            'hosts': args.hosts,
            'level': args.level,
            'storagedir': args.storagedir,
            'submit_command': args.submit_command,
            'logging': args.logging,
            'load_balancing': args.load_balancing,
            'show_info': args.show_info,
            'reproducible': args.reproducible,
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        return ParallelMapOptions.from_dict(options)
