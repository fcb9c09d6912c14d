#!/usr/bin/env python3
"""
Shared pytest fixtures for the parallelmap test suite.

Every test starts without a running session and with an empty default option
store, and whatever session a test starts is stopped afterwards so that no
worker process outlives its test.
"""

import pytest

from parallelmap import parallel_stop, reset_default_options
from parallelmap.core.staging import clear_exported


@pytest.fixture(autouse=True)
def clean_session():
    reset_default_options()
    yield
    parallel_stop()
    reset_default_options()
    clear_exported()


@pytest.fixture
def storagedir(tmp_path):
    return str(tmp_path)
