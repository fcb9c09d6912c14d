#!/usr/bin/env python3

"""
parallelmap Level Registry

Libraries tag their parallel_map call sites with levels such as "mylib.resample" so that an application can choose which of them is parallelized. This module keeps the process-wide registry of those levels. Registration is purely additive: re-registering a level is a no-op and nothing is ever removed for the lifetime of the process. The registry is consulted at session start to warn about a selected level nobody registered, and it can be listed for display.

Classes:
    LevelRegistry: Append-only mapping from owner name to ordered level names.
    RegisteredLevels: Restartable, read-only view over the registered levels.

Functions:
    parallel_register_levels: Register levels for an owner in the process-wide registry.
    parallel_get_registered_levels: Return the registered levels, grouped or flattened.

Date: November 2025
Version: 1.0.0
"""

from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .constants import DEFAULT_LEVEL_OWNER
from .exceptions import ConfigurationError


def level_id(owner: str, level: str) -> str:
    """Return the identifier "<owner>.<level>" used to tag map calls."""
    return f"{owner}.{level}"


class RegisteredLevels:
    """
    Read-only view of the registry. Iterating yields (owner, level) pairs grouped by owner in registration order; every iteration starts from the beginning and reflects the registry at that moment.
    """

    def __init__(self, registry: 'LevelRegistry') -> None:
        self._registry = registry

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        for owner, levels in list(self._registry._levels.items()):
            for level in list(levels):
                yield owner, level

    def __len__(self) -> int:
        return sum(len(levels) for levels in self._registry._levels.values())

    def __contains__(self, item) -> bool:
        if isinstance(item, tuple):
            return item in set(self)
        return item in self.flatten()

    def flatten(self) -> List[str]:
        return [level_id(owner, level) for owner, level in self]

    def as_dict(self) -> Dict[str, List[str]]:
        return {owner: list(levels) for owner, levels in self._registry._levels.items()}

    def __str__(self) -> str:
        lines = []
        for owner, levels in self.as_dict().items():
            lines.append(f"{owner} ({len(levels)}): {', '.join(level_id(owner, lv) for lv in levels)}")
        return "\n".join(lines) if lines else "No levels registered."

    def __repr__(self) -> str:
        return f"RegisteredLevels({self.as_dict()!r})"


class LevelRegistry:
    """Append-only mapping owner -> ordered set of level names."""

    def __init__(self) -> None:
        self._levels: Dict[str, Dict[str, None]] = {}

    def register(self, owner: str, levels: Union[str, Iterable[str]]) -> None:
        """
        Add levels for an owner. Owner and level names must be non-empty strings; duplicates are ignored and registration order is kept.

        Parameters:
            owner (str): Name of the registering library or application.
            levels (str or Iterable[str]): Level name(s) without the owner prefix.

        Returns:
            None
        """
        if not isinstance(owner, str) or not owner:
            raise ConfigurationError(f"Level owner must be a non-empty string, got {owner!r}")

        if isinstance(levels, str):
            levels = [levels]
        levels = list(levels)
        for level in levels:
            if not isinstance(level, str) or not level:
                raise ConfigurationError(f"Level names must be non-empty strings, got {level!r}")

        owned = self._levels.setdefault(owner, {})
        for level in levels:
            owned.setdefault(level, None)

    def is_registered(self, level: str) -> bool:
        return level in self.listing().flatten()

    def listing(self) -> RegisteredLevels:
        return RegisteredLevels(self)


_registry = LevelRegistry()


def get_level_registry() -> LevelRegistry:
    return _registry


def parallel_register_levels(owner: Optional[str] = None,
                             levels: Union[str, Iterable[str], None] = None) -> None:
    """
    Register parallelization levels in the process-wide registry. Libraries call this at import time for the levels their parallel_map call sites use, so that a user selecting one of them at start gets no warning.

    Parameters:
        owner (Optional[str]): Owner name, "custom" when omitted.
        levels (str or Iterable[str]): Level names without the owner prefix.

    Returns:
        None

    Examples:
        >>> parallel_register_levels("mylib", ["resample", "tune"])
        >>> parallel_get_registered_levels().flatten()
        ['mylib.resample', 'mylib.tune']
    """
    if levels is None:
        raise ConfigurationError("No levels given to register")
    _registry.register(owner or DEFAULT_LEVEL_OWNER, levels)


def parallel_get_registered_levels(flatten: bool = False) -> Union[RegisteredLevels, List[str]]:
    listing = _registry.listing()
    return listing.flatten() if flatten else listing
