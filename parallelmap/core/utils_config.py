#!/usr/bin/env python3

"""
parallelmap Configuration Management Utilities

This module provides configuration management for parallelization sessions including option validation, YAML file I/O, the process-wide default option store and the per-mode configuration records consumed by the backend providers. It implements the ParallelMapOptions dataclass that holds every user-facing start option (mode, worker count, host list, level, logging flag, storage directory, load balancing, verbosity, local error suppression, reproducibility and batch queue resources) with built-in defaults, supports loading and saving options as YAML, and resolves start arguments through three layers: an explicit argument wins over the process-wide default store, which wins over the built-in default. Fully resolved options are then turned into one frozen configuration record per mode (LocalConfig, MultiProcessConfig, SocketConfig, MPIConfig, BatchQueueConfig), each carrying only the fields its mode accepts, and wrapped into the SessionSettings held by the session.

Classes:
    ParallelMapOptions: User-facing start options with validation and YAML I/O.
    LocalConfig, MultiProcessConfig, SocketConfig, MPIConfig, BatchQueueConfig: Per-mode configuration records.
    SessionSettings: Resolved settings of one session.

Functions:
    set_default_options, get_default_options, reset_default_options, load_default_options: Process-wide default store.
    resolve_options: Layer explicit arguments over the default store.
    build_session_settings: Validate resolved options and build the per-mode record.

Date: November 2025
Version: 1.0.0
"""

import os
import yaml
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
from dataclasses import dataclass, asdict, field, fields

from .constants import (
    Mode, LOCAL_CPUS_MSG, LOCAL_LOGGING_MSG, SOCKET_CPUS_HOSTS_MSG
)
from .exceptions import ConfigurationError


@dataclass
class ParallelMapOptions:
    """
    Start options for a parallelization session.

    Attributes:
        mode (str): Backend family, one of local, multiprocess, socket, mpi, batchqueue.
        cpus (Optional[int]): Number of workers; auto-detected for multiprocess and mpi when unset.
        hosts (Optional[List[str]]): Socket mode host names, one worker per entry.
        level (Optional[str]): Only map calls tagged with exactly this level are parallelized.
        logging (bool): Redirect worker output to per-element log files under storagedir.
        storagedir (Optional[str]): Writable directory for logs and batch registries, cwd when unset.
        load_balancing (bool): Hand out one element at a time to idle workers.
        show_info (bool): Log session and mapping messages at INFO level.
        suppress_local_errors (bool): Local mode only, keep going and store error markers.
        reproducible (bool): Distribute a reproducible random seed to workers.
        resources (Optional[Dict[str, Any]]): Batch queue submission resources.
        submit_command (Optional[str]): Batch queue submission template, local subprocess when unset.
    """
    mode: str = "local"
    cpus: Optional[int] = None
    hosts: Optional[List[str]] = None
    level: Optional[str] = None
    logging: bool = False
    storagedir: Optional[str] = None
    load_balancing: bool = False
    show_info: bool = True
    suppress_local_errors: bool = False
    reproducible: bool = True
    resources: Optional[Dict[str, Any]] = None
    submit_command: Optional[str] = None

    def __post_init__(self) -> None:
        """
        Validate option values after dataclass instantiation. The mode name must map to a known mode, the worker count must be a positive integer when given, and the host list must be a non-empty list of strings when given. Violations raise ConfigurationError so that invalid options never reach the session.

        Returns:
            None
        """
        try:
            self.mode = Mode.parse(self.mode).value
        except ValueError:
            raise ConfigurationError(f"Unknown parallel mode: {self.mode!r}") from None

        if self.cpus is not None:
            if isinstance(self.cpus, bool) or not isinstance(self.cpus, int) or self.cpus < 1:
                raise ConfigurationError(f"cpus must be a positive integer, got {self.cpus!r}")

        if self.hosts is not None:
            if isinstance(self.hosts, str):
                self.hosts = [self.hosts]
            self.hosts = list(self.hosts)
            if not self.hosts or not all(isinstance(h, str) and h for h in self.hosts):
                raise ConfigurationError("hosts must be a non-empty list of host names")

        if self.level is not None and not isinstance(self.level, str):
            raise ConfigurationError(f"level must be a string, got {self.level!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'ParallelMapOptions':
        """
        Construct options from a dictionary, rejecting keys that are not option names.

        Parameters:
            config_dict (Dict[str, Any]): Option names mapped to values.

        Returns:
            ParallelMapOptions: Validated options.
        """
        unknown = set(config_dict) - option_names()
        if unknown:
            raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")
        return cls(**config_dict)

    def save_to_file(self, filepath: str) -> None:
        """
        Persist the options to a YAML file so that a default configuration can be shared between scripts and machines. Only explicitly meaningful values are written; the file can be loaded back with load_from_file or installed as process-wide defaults with load_default_options.

        Parameters:
            filepath (str): Path of the YAML file to write.

        Returns:
            None
        """
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2)

    @classmethod
    def load_from_file(cls, filepath: str) -> 'ParallelMapOptions':
        """
        Load options from a YAML file. An empty file yields the built-in defaults.

        Parameters:
            filepath (str): Path of the YAML file to read.

        Returns:
            ParallelMapOptions: Validated options.
        """
        with open(filepath, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Option file {filepath} must contain a mapping")
        return cls.from_dict(config_dict)


def option_names() -> set:
    return {f.name for f in fields(ParallelMapOptions)}


_default_options: Dict[str, Any] = {}


def set_default_options(**options: Any) -> None:
    """
    Update the process-wide default option store. Values given here are used by every later start call that does not pass the option explicitly. Passing None removes a stored default.

    Parameters:
        **options: Option names mapped to default values.

    Returns:
        None
    """
    unknown = set(options) - option_names()
    if unknown:
        raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    merged = dict(_default_options)
    for name, value in options.items():
        if value is None:
            merged.pop(name, None)
        else:
            merged[name] = value
    ParallelMapOptions(**merged)

    _default_options.clear()
    _default_options.update(merged)


def get_default_options() -> ParallelMapOptions:
    """Return the built-in defaults overlaid with the process-wide default store."""
    return ParallelMapOptions(**_default_options)


def reset_default_options() -> None:
    _default_options.clear()


def load_default_options(filepath: str) -> ParallelMapOptions:
    """
    Install the options of a YAML file as process-wide defaults. Only keys present in the file are stored, so options missing from the file keep their built-in defaults.

    Parameters:
        filepath (str): Path of the YAML option file.

    Returns:
        ParallelMapOptions: The defaults in effect after loading.
    """
    with open(filepath, 'r') as f:
        config_dict = yaml.safe_load(f) or {}
    if not isinstance(config_dict, dict):
        raise ConfigurationError(f"Option file {filepath} must contain a mapping")
    set_default_options(**config_dict)
    return get_default_options()


def resolve_options(unset: Iterable[str] = (), **explicit: Any) -> ParallelMapOptions:
    """
    Resolve start options layer by layer: an explicit argument that is not None wins over the process-wide default store, which wins over the built-in default. Options named in unset skip the default store and take the built-in default, which lets mode shortcuts pin options such as cpus to "not set". The storage directory falls back to the current working directory.

    Parameters:
        unset (Iterable[str]): Options resolved to their built-in default.
        **explicit: Options passed to the start call, None meaning unset.

    Returns:
        ParallelMapOptions: Fully resolved options.
    """
    unknown = (set(explicit) | set(unset)) - option_names()
    if unknown:
        raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    merged = {k: v for k, v in _default_options.items() if k not in set(unset)}
    merged.update({k: v for k, v in explicit.items() if v is not None})
    options = ParallelMapOptions(**merged)

    if options.storagedir is None:
        options.storagedir = os.getcwd()
    return options


@dataclass(frozen=True)
class LocalConfig:
    suppress_local_errors: bool = False


@dataclass(frozen=True)
class MultiProcessConfig:
    cpus: int
    storagedir: str
    load_balancing: bool = False
    logging: bool = False
    reproducible: bool = True


@dataclass(frozen=True)
class SocketConfig:
    """
    Socket mode configuration. Exactly one of cpus (local worker processes) and hosts (one worker per host entry) is set once the record exists.
    """
    storagedir: str
    cpus: Optional[int] = None
    hosts: Optional[Tuple[str, ...]] = None
    load_balancing: bool = False
    logging: bool = False
    reproducible: bool = True
    master_address: Optional[str] = None
    connect_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.cpus is not None and self.hosts is not None:
            raise ConfigurationError(SOCKET_CPUS_HOSTS_MSG)
        if self.cpus is None and self.hosts is None:
            object.__setattr__(self, "cpus", 1)

    @property
    def n_workers(self) -> int:
        return self.cpus if self.hosts is None else len(self.hosts)


@dataclass(frozen=True)
class MPIConfig:
    cpus: int
    storagedir: str
    load_balancing: bool = False
    logging: bool = False
    reproducible: bool = True


@dataclass(frozen=True)
class BatchQueueConfig:
    storagedir: str
    resources: Dict[str, Any] = field(default_factory=dict)
    logging: bool = False
    submit_command: Optional[str] = None
    reproducible: bool = True
    poll_interval: float = 0.2
    max_concurrent_jobs: Optional[int] = None


BackendConfig = Union[LocalConfig, MultiProcessConfig, SocketConfig, MPIConfig, BatchQueueConfig]


@dataclass(frozen=True)
class SessionSettings:
    """
    Resolved settings of one session: the mode, the level filter, the verbosity flag, the per-mode backend record, and the options they were resolved from (kept for introspection).
    """
    mode: Mode
    level: Optional[str]
    show_info: bool
    backend: BackendConfig
    options: ParallelMapOptions

    @property
    def cpus(self) -> Optional[int]:
        if isinstance(self.backend, SocketConfig):
            return self.backend.n_workers
        return getattr(self.backend, "cpus", None)

    @property
    def logging(self) -> bool:
        return getattr(self.backend, "logging", False)

    @property
    def storagedir(self) -> Optional[str]:
        return getattr(self.backend, "storagedir", None)


def build_session_settings(options: ParallelMapOptions,
                           detect_cpus: Callable[[Mode], int],
                           **backend_extra: Any) -> SessionSettings:
    """
    Validate fully resolved options against the mode invariants and build the session settings. Worker counts are auto-detected for multiprocess and mpi mode when unset; socket mode falls back to a single local worker when neither cpus nor hosts is given. Local mode rejects a worker count and enabled logging. Extra keyword arguments are forwarded to the socket and batch queue records (e.g. master_address, connect_timeout, poll_interval).

    Parameters:
        options (ParallelMapOptions): Resolved start options.
        detect_cpus (Callable[[Mode], int]): Worker count detection for multiprocess and mpi mode.
        **backend_extra: Mode-specific record fields not part of the user options.

    Returns:
        SessionSettings: Settings with the per-mode backend record.
    """
    mode = Mode.parse(options.mode)
    cpus = options.cpus

    if mode is Mode.LOCAL:
        if cpus is not None:
            raise ConfigurationError(LOCAL_CPUS_MSG.format(cpus=cpus))
        if options.logging:
            raise ConfigurationError(LOCAL_LOGGING_MSG)
        backend: BackendConfig = LocalConfig(suppress_local_errors=options.suppress_local_errors)

    elif mode is Mode.MULTIPROCESS:
        backend = MultiProcessConfig(
            cpus=cpus if cpus is not None else detect_cpus(mode),
            storagedir=options.storagedir,
            load_balancing=options.load_balancing,
            logging=options.logging,
            reproducible=options.reproducible,
        )

    elif mode is Mode.SOCKET:
        socket_extra = {k: v for k, v in backend_extra.items()
                        if k in ("master_address", "connect_timeout")}
        backend = SocketConfig(
            storagedir=options.storagedir,
            cpus=cpus,
            hosts=tuple(options.hosts) if options.hosts else None,
            load_balancing=options.load_balancing,
            logging=options.logging,
            reproducible=options.reproducible,
            **socket_extra,
        )

    elif mode is Mode.MPI:
        backend = MPIConfig(
            cpus=cpus if cpus is not None else detect_cpus(mode),
            storagedir=options.storagedir,
            load_balancing=options.load_balancing,
            logging=options.logging,
            reproducible=options.reproducible,
        )

    else:
        batch_extra = {k: v for k, v in backend_extra.items()
                       if k in ("poll_interval", "max_concurrent_jobs")}
        backend = BatchQueueConfig(
            storagedir=options.storagedir,
            resources=dict(options.resources or {}),
            logging=options.logging,
            submit_command=options.submit_command,
            reproducible=options.reproducible,
            **batch_extra,
        )

    unused = set(backend_extra) - {"master_address", "connect_timeout",
                                   "poll_interval", "max_concurrent_jobs"}
    if unused:
        raise ConfigurationError(f"Unknown backend argument(s): {', '.join(sorted(unused))}")

    return SessionSettings(mode=mode, level=options.level, show_info=options.show_info,
                           backend=backend, options=options)
