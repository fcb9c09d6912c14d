#!/usr/bin/env python3
"""
parallelmap Dispatcher Tests

This module tests parallel_map independently of any worker processes. Local
mode sessions go through the same dispatch path as the parallel modes, so a
spy wrapped around the provider's execute method shows whether a call was
dispatched or ran through the sequential fallback. The tests cover the gating
rule (outermost call only, level filter), the stopped-session fallback,
argument zipping, error propagation and suppression, impute_error and the
simplify / use_names result shaping.

Date: November 2025
Version: 1.0.0
"""

import numpy as np
import pytest

from parallelmap import (
    TaskError, TaskFailure, is_failure, parallel_map, parallel_register_levels,
    parallel_start, parallel_start_local
)
from parallelmap.core.session import get_session
from tests.tasks import add, fail_on_two, inner_map, nesting_depth, square

parallel_register_levels("test_dispatch", ["outer", "inner"])


@pytest.fixture
def dispatch_spy(monkeypatch):
    """Start a local session and record the batches reaching the provider."""
    parallel_start_local(show_info=False)
    session = get_session()
    batches = []
    original = session.provider.execute

    def spy(handle, batch):
        batches.append(batch)
        return original(handle, batch)

    monkeypatch.setattr(session.provider, "execute", spy)
    return batches


def test_stopped_session_applies_sequentially():
    assert parallel_map(square, range(5)) == [0, 1, 4, 9, 16]
    assert get_session().nesting_depth == 0


def test_multiple_iterables_and_more_args():
    assert parallel_map(add, [1, 2], [10, 20], more_args={"offset": 100}) == [111, 122]


def test_unequal_lengths():
    with pytest.raises(ValueError, match="same length"):
        parallel_map(add, [1, 2], [1])


def test_invalid_arguments():
    with pytest.raises(ValueError):
        parallel_map(square)
    with pytest.raises(TypeError):
        parallel_map(3, [1])
    with pytest.raises(TypeError):
        parallel_map(square, [1], more_args=[1])


def test_empty_input(dispatch_spy):
    assert parallel_map(square, []) == []


def test_outermost_call_is_dispatched(dispatch_spy):
    assert parallel_map(square, range(3)) == [0, 1, 4]
    assert len(dispatch_spy) == 1
    assert get_session().nesting_depth == 0


def test_nested_call_runs_sequentially(dispatch_spy):
    """
    A map call made from inside a mapped function sees a nesting depth of 2 and must not reach the provider.
    """
    assert parallel_map(inner_map, [2, 3]) == [[0, 1], [0, 1, 4]]
    assert len(dispatch_spy) == 1
    assert parallel_map(nesting_depth, [0]) == [1]
    assert get_session().nesting_depth == 0


def test_nesting_depth_restored_after_error(dispatch_spy):
    with pytest.raises(TaskError):
        parallel_map(fail_on_two, range(4))
    assert get_session().nesting_depth == 0


def test_level_filter(monkeypatch):
    """
    With a session level only calls tagged with exactly that level are dispatched; untagged calls and other levels fall back.
    """
    parallel_start(mode="local", level="test_dispatch.outer", show_info=False)
    session = get_session()
    calls = []
    original = session.provider.execute

    def spy(handle, batch):
        calls.append(batch)
        return original(handle, batch)

    monkeypatch.setattr(session.provider, "execute", spy)

    parallel_map(square, [1], level="test_dispatch.inner")
    parallel_map(square, [1])
    assert calls == []

    assert parallel_map(square, [1, 2], level="test_dispatch.outer") == [1, 4]
    assert len(calls) == 1


def test_no_session_level_admits_every_call(dispatch_spy):
    parallel_map(square, [1], level="test_dispatch.inner")
    parallel_map(square, [1], level="test_dispatch.outer")
    assert len(dispatch_spy) == 2


def test_local_error_raises_task_error(dispatch_spy):
    with pytest.raises(TaskError) as excinfo:
        parallel_map(fail_on_two, range(5))

    error = excinfo.value
    assert error.first.index == 2
    assert error.first.exc_type == "ValueError"
    assert isinstance(error.__cause__, ValueError)


def test_fallback_raises_original_exception():
    with pytest.raises(ValueError, match="Intentional error"):
        parallel_map(fail_on_two, range(5))

    parallel_start(mode="local", level="test_dispatch.outer", show_info=False)
    with pytest.raises(ValueError, match="Intentional error"):
        parallel_map(fail_on_two, range(5), level="test_dispatch.inner")


def test_suppress_local_errors_keeps_markers():
    parallel_start_local(show_info=False, suppress_local_errors=True)
    results = parallel_map(fail_on_two, range(4))

    assert results[:2] == [0, 1]
    assert results[3] == 3
    assert is_failure(results[2])
    assert results[2].index == 2
    assert "Intentional error" in results[2].message


def test_impute_error_value_and_callable(dispatch_spy):
    assert parallel_map(fail_on_two, range(4), impute_error=-1) == [0, 1, -1, 3]

    results = parallel_map(fail_on_two, range(4), impute_error=lambda f: f.exc_type)
    assert results == [0, 1, "ValueError", 3]


def test_impute_error_in_fallback():
    results = parallel_map(fail_on_two, range(4), impute_error=0)
    assert results == [0, 1, 0, 3]
    results = parallel_map(fail_on_two, range(3), impute_error=lambda f: f)
    assert isinstance(results[2], TaskFailure)


def test_simplify():
    result = parallel_map(square, range(4), simplify=True)
    assert isinstance(result, np.ndarray)
    np.testing.assert_array_equal(result, [0, 1, 4, 9])


def test_use_names():
    assert parallel_map(str.upper, ["a", "b"], use_names=True) == {"a": "A", "b": "B"}
    assert parallel_map(square, [1, 2], use_names=True) == [1, 4]


def test_local_dispatch_does_not_advance_map_counter(dispatch_spy):
    parallel_map(square, [1])
    assert get_session().next_map == 1
