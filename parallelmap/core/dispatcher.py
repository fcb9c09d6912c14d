#!/usr/bin/env python3

"""
parallelmap Dispatcher

This module implements parallel_map, the single entry point through which calling code maps a function over its inputs. Whether a call runs in parallel is decided here and not by the caller: a call is dispatched to the session backend only when a session is started, the call is the outermost map call currently executing (nested calls run sequentially in place) and the call's level matches the session level when one was selected. Everything else runs as a plain sequential apply in the calling process, so library code can tag its call sites generously without ever oversubscribing workers.

A parallel dispatch creates the per-dispatch log directory when logging is enabled, pushes the pending export staging to the workers (failures raise StagingError before the function runs anywhere), executes the batch through the session's provider and assembles the results in input order. Failed elements raise TaskError with the first failure received unless impute_error supplies a replacement value, or local mode was started with suppress_local_errors, in which case the TaskFailure marker is kept in the result slot. A worker process lost mid-dispatch always raises TaskError, since the elements it held were never evaluated.

Functions:
    parallel_map: Map a function over one or more iterables.

Date: November 2025
Version: 1.0.0
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from .constants import LOST_WORKER_TYPE, Mode
from .exceptions import ResourceError, StagingError, TaskError, TaskFailure
from .session import Session, get_session
from .utils_file import StorageManager
from .utils_logger import ensure_console_logging, get_logger
from ..backends.base import TaskBatch

logger = get_logger("dispatcher")


@contextmanager
def _nesting(session: Session):
    """Count the map call as executing for the duration of the block and yield the depth including it."""
    session.nesting_depth += 1
    try:
        yield session.nesting_depth
    finally:
        session.nesting_depth = max(0, session.nesting_depth - 1)


def _zip_inputs(iterables: Tuple[Iterable, ...]) -> Tuple[List[list], List[Tuple]]:
    if not iterables:
        raise ValueError("parallel_map needs at least one iterable to map over")
    columns = [list(it) for it in iterables]
    lengths = {len(c) for c in columns}
    if len(lengths) > 1:
        raise ValueError(f"All iterables must have the same length, got lengths {[len(c) for c in columns]}")
    return columns, list(zip(*columns))


def _impute(impute_error: Any, failure: TaskFailure) -> Any:
    if callable(impute_error):
        return impute_error(failure)
    return impute_error


def _apply_sequential(fn: Callable, args: List[Tuple], more_args: Dict[str, Any],
                      impute_error: Any) -> List[Any]:
    """
    Apply fn in the calling process. Errors propagate unchanged unless impute_error is given.
    """
    results = []
    for index, element_args in enumerate(args):
        if impute_error is None:
            results.append(fn(*element_args, **more_args))
            continue
        try:
            results.append(fn(*element_args, **more_args))
        except Exception as e:
            failure = TaskFailure.from_exception(index, e)
            logger.debug(f"Imputed result for {failure}")
            results.append(_impute(impute_error, failure))
    return results


def _push_staging(session: Session) -> None:
    if session.staging.is_empty():
        return
    staged = session.staging.pending()
    try:
        session.provider.push(session.handle, staged)
    except ResourceError:
        raise
    except Exception as e:
        raise StagingError(f"Failed to push staged objects to the workers: {e}") from e
    session.staging.clear()


def _dispatch(session: Session, fn: Callable, args: List[Tuple], more_args: Dict[str, Any],
              level: Optional[str], impute_error: Any, show_info: bool) -> List[Any]:
    """
    Run one eligible map call through the session's backend and assemble the results in input order.

    Parameters:
        session (Session): Started session.
        fn (Callable): Mapped function.
        args (List[Tuple]): Positional arguments per element.
        more_args (Dict[str, Any]): Keyword arguments shared by all elements.
        level (Optional[str]): Level tag of the call.
        impute_error (Any): Replacement for failed elements, None to raise.
        show_info (bool): Log the mapping message.

    Returns:
        List[Any]: Results in input order.
    """
    settings = session.settings
    is_local = settings.mode is Mode.LOCAL
    suppress = is_local and settings.backend.suppress_local_errors
    stop_on_error = impute_error is None and not suppress

    call_id = session.next_map
    log_dir = None

    if not is_local:
        session.next_map += 1
        if settings.logging:
            log_dir = StorageManager.create_log_dir(settings.storagedir, call_id)
        _push_staging(session)

        if show_info:
            ensure_console_logging()
            logger.info(f"Mapping in parallel: mode = {settings.mode.value}, level = {level}, "
                        f"cpus = {settings.cpus}, elements = {len(args)}.")

    batch = TaskBatch(fn=fn, args=args, more_args=more_args, call_id=call_id,
                      log_dir=log_dir, stop_on_error=stop_on_error)

    with session.monitor.timer(f"parallel_map {settings.mode.value} #{call_id}"):
        outcomes = session.provider.execute(session.handle, batch)

    failed = [o for o in outcomes if not o.success]
    complete = len(outcomes) == len(args)
    lost = any(o.failure.exc_type == LOST_WORKER_TYPE for o in failed)

    if not complete or lost or (failed and stop_on_error):
        error = TaskError([o.failure for o in failed], call_id=call_id if not is_local else None)
        cause = failed[0].exception if failed else None
        raise error from cause

    results: List[Any] = [None] * len(args)
    for outcome in outcomes:
        if outcome.success:
            results[outcome.index] = outcome.value
        elif impute_error is not None:
            results[outcome.index] = _impute(impute_error, outcome.failure)
        else:
            results[outcome.index] = outcome.failure

    if failed and log_dir is not None:
        logger.debug(f"{len(failed)} element(s) failed, see logs in {log_dir}")
    return results


def parallel_map(fn: Callable, *iterables: Iterable, more_args: Optional[Dict[str, Any]] = None,
                 level: Optional[str] = None, simplify: bool = False, use_names: bool = False,
                 impute_error: Any = None,
                 show_info: Optional[bool] = None) -> Union[List[Any], np.ndarray, Dict[str, Any]]:
    """
    Map fn over the zipped iterables, in parallel when the running session allows it. Results always come back in input order, regardless of mode and scheduling.

    Parameters:
        fn (Callable): Function called as fn(*element, **more_args).
        *iterables (Iterable): Inputs of equal length, zipped like the builtin map.
        more_args (Optional[Dict[str, Any]]): Keyword arguments passed to every call.
        level (Optional[str]): Level tag ("owner.level") of this call site.
        simplify (bool): Return numpy.asarray(results) instead of a list.
        use_names (bool): Return a dict keyed by the elements of the first iterable when they are strings.
        impute_error (Any): Value (or callable receiving the TaskFailure) stored for failed elements instead of raising.
        show_info (Optional[bool]): Override the session's show_info for this call.

    Returns:
        list, numpy.ndarray or dict: Results in input order.

    Raises:
        TaskError: An element failed in a parallel or local dispatch and no impute_error was given.
        StagingError: Staged exports, modules or sources could not be pushed to the workers.
        ResourceError: The session's worker pool lost a worker in an earlier dispatch.

    Examples:
        >>> parallel_map(lambda x, y: x + y, [1, 2], [10, 20])
        [11, 22]
    """
    if not callable(fn):
        raise TypeError(f"fn must be callable, got {type(fn).__name__}")
    if level is not None and not isinstance(level, str):
        raise TypeError(f"level must be a string, got {level!r}")
    if more_args is not None and not isinstance(more_args, dict):
        raise TypeError("more_args must be a dict of keyword arguments")

    columns, args = _zip_inputs(iterables)
    more_args = dict(more_args or {})
    session = get_session()

    if not session.is_started:
        results = _apply_sequential(fn, args, more_args, impute_error)
    else:
        with _nesting(session) as depth:
            settings = session.settings
            eligible = depth == 1 and (settings.level is None or level == settings.level)
            if eligible:
                verbose = settings.show_info if show_info is None else show_info
                results = _dispatch(session, fn, args, more_args, level, impute_error, verbose)
            else:
                results = _apply_sequential(fn, args, more_args, impute_error)

    if use_names and columns[0] and all(isinstance(name, str) for name in columns[0]):
        return dict(zip(columns[0], results))
    if simplify:
        return np.asarray(results)
    return results
