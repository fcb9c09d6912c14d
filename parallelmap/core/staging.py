#!/usr/bin/env python3

"""
parallelmap Export, Module and Source Staging

Objects, module names and source files that mapped functions depend on are staged on the master and pushed to the workers right before the next parallel dispatch, so that several staging calls issued between dispatches cost a single push. This module holds the pending set (ExportStaging) owned by the session and the per-process exported namespace that jobs read through get_exported. The master binds exports into its own namespace immediately, which keeps sequential fallbacks and local mode working with the same lookups as the workers.

Classes:
    StagedItems: Snapshot of pending exports, modules and source files.
    ExportStaging: Pending set owned by the session, cleared after each push.

Functions:
    get_exported: Look up an exported object in the current process.
    bind_exports, import_modules, source_files: Apply staged items in the current process.

Date: November 2025
Version: 1.0.0
"""

import os
import importlib
import runpy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from .exceptions import ResourceError

_MISSING = object()

_exported: Dict[str, Any] = {}


def get_exported(name: str, default: Any = _MISSING) -> Any:
    """
    Return an object exported with parallel_export (or defined by a sourced file) in the current process. Inside a job this reads the worker's namespace; on the master it reads the values bound at export time.

    Parameters:
        name (str): Export name.
        default (Any): Value returned when the name is unknown; KeyError is raised when omitted.

    Returns:
        Any: The exported object.
    """
    if name in _exported:
        return _exported[name]
    if default is _MISSING:
        raise KeyError(f"Object '{name}' was not exported with parallel_export")
    return default


def check_export_name(name: str) -> None:
    if not isinstance(name, str) or not name.isidentifier():
        raise ValueError(f"Export name must be a valid identifier, got {name!r}")


def resolve_source_path(path: str) -> str:
    path = os.path.abspath(os.path.expanduser(path))
    if not os.path.isfile(path):
        raise ResourceError(f"Source file does not exist: {path}")
    return path


def bind_exports(objects: Dict[str, Any]) -> None:
    _exported.update(objects)


def clear_exported() -> None:
    _exported.clear()


def import_modules(names: Iterable[str]) -> List[Any]:
    return [importlib.import_module(name) for name in names]


def source_files(paths: Iterable[str]) -> List[str]:
    """
    Execute Python source files and bind their public top-level names into the exported namespace of the current process.

    Parameters:
        paths (Iterable[str]): Paths of the files to execute.

    Returns:
        List[str]: Names bound by the executed files.
    """
    bound = []
    for path in paths:
        namespace = runpy.run_path(path, run_name="__parallelmap_source__")
        public = {k: v for k, v in namespace.items() if not k.startswith("_")}
        _exported.update(public)
        bound.extend(public)
    return bound


@dataclass
class StagedItems:
    exports: Dict[str, Any] = field(default_factory=dict)
    libraries: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.exports or self.libraries or self.sources)


class ExportStaging:
    """
    Pending exports, modules and source files of a session. Re-staging a name overwrites its previous value; libraries and sources keep their first staging position.
    """

    def __init__(self) -> None:
        self._exports: Dict[str, Any] = {}
        self._libraries: Dict[str, None] = {}
        self._sources: Dict[str, None] = {}

    def stage_export(self, name: str, value: Any) -> None:
        check_export_name(name)
        self._exports[name] = value

    def stage_library(self, name: str) -> None:
        self._libraries.setdefault(name, None)

    def stage_source(self, path: str) -> str:
        path = resolve_source_path(path)
        self._sources.setdefault(path, None)
        return path

    def pending(self) -> StagedItems:
        return StagedItems(exports=dict(self._exports),
                           libraries=list(self._libraries),
                           sources=list(self._sources))

    def is_empty(self) -> bool:
        return not (self._exports or self._libraries or self._sources)

    def clear(self) -> None:
        self._exports.clear()
        self._libraries.clear()
        self._sources.clear()
