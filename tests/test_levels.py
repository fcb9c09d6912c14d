#!/usr/bin/env python3
"""
parallelmap Level Registry Unit Tests

Tests for level registration, duplicate handling, the default owner and the
restartable RegisteredLevels view. Each test builds its own LevelRegistry
where possible; tests of the module-level functions use owner names unique to
this module because the process-wide registry is append-only.

Date: November 2025
Version: 1.0.0
"""

import pytest

from parallelmap import parallel_get_registered_levels, parallel_register_levels
from parallelmap.core.exceptions import ConfigurationError
from parallelmap.core.levels import LevelRegistry, RegisteredLevels, level_id


def test_level_id():
    assert level_id("mylib", "resample") == "mylib.resample"


def test_register_keeps_order_and_ignores_duplicates():
    registry = LevelRegistry()
    registry.register("mylib", ["resample", "tune"])
    registry.register("mylib", "resample")
    registry.register("other", "fit")

    listing = registry.listing()
    assert list(listing) == [("mylib", "resample"), ("mylib", "tune"), ("other", "fit")]
    assert listing.flatten() == ["mylib.resample", "mylib.tune", "other.fit"]
    assert len(listing) == 3


def test_listing_is_restartable_and_live():
    """
    Iterating the view twice yields the same pairs, and a level registered after the view was created shows up in the next iteration.
    """
    registry = LevelRegistry()
    registry.register("a", ["x", "y"])
    listing = registry.listing()

    assert list(listing) == list(listing)

    registry.register("b", "z")
    assert ("b", "z") in listing
    assert "b.z" in listing
    assert len(list(listing)) == 3


def test_is_registered():
    registry = LevelRegistry()
    registry.register("a", "x")
    assert registry.is_registered("a.x")
    assert not registry.is_registered("a.y")
    assert not registry.is_registered("x")


def test_invalid_names():
    registry = LevelRegistry()
    with pytest.raises(ConfigurationError):
        registry.register("", "x")
    with pytest.raises(ConfigurationError):
        registry.register("a", ["x", ""])
    with pytest.raises(ConfigurationError):
        registry.register("a", [1])
    assert len(registry.listing()) == 0


def test_listing_str():
    registry = LevelRegistry()
    assert str(registry.listing()) == "No levels registered."
    registry.register("mylib", ["a", "b"])
    assert str(registry.listing()) == "mylib (2): mylib.a, mylib.b"
    assert registry.listing().as_dict() == {"mylib": ["a", "b"]}


def test_module_functions_use_default_owner():
    parallel_register_levels(levels=["test_levels_default"])
    assert "custom.test_levels_default" in parallel_get_registered_levels(flatten=True)

    parallel_register_levels("test_levels_owner", ["one", "two"])
    listing = parallel_get_registered_levels()
    assert isinstance(listing, RegisteredLevels)
    assert ("test_levels_owner", "two") in listing


def test_register_requires_levels():
    with pytest.raises(ConfigurationError):
        parallel_register_levels("test_levels_owner")
