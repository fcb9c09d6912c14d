#!/usr/bin/env python3

"""
parallelmap Reproducible Random Streams

When a session is started with reproducible=True, one base seed is drawn from the master's global numpy random state (so that numpy.random.seed on the master controls it) and handed to every worker. Before each element runs, the worker derives an independent stream from the base seed, the map invocation number and the element index with numpy's SeedSequence, and reseeds the global numpy and stdlib random generators from it. Results therefore depend only on the master seed, never on which worker ran which element or in which order.

Functions:
    draw_base_seed: Draw the base seed from the master random state.
    seed_task: Reseed the current process for one element.
    task_rng: Generator for the element currently running.

Date: November 2025
Version: 1.0.0
"""

import random
from typing import Optional

import numpy as np

from .constants import SEED_RANGE

_task_rng: Optional[np.random.Generator] = None


def draw_base_seed() -> int:
    low, high = SEED_RANGE
    return int(np.random.randint(low, high + 1))


def task_seed_sequence(base_seed: int, call_id: int, index: int) -> np.random.SeedSequence:
    return np.random.SeedSequence(entropy=base_seed, spawn_key=(call_id, index))


def seed_task(base_seed: int, call_id: int, index: int) -> None:
    """
    Reseed numpy's legacy global state, the stdlib random module and the task generator for one element.

    Parameters:
        base_seed (int): Seed distributed by the master.
        call_id (int): Map invocation number of the dispatch.
        index (int): Zero-based element index.

    Returns:
        None
    """
    global _task_rng
    seq = task_seed_sequence(base_seed, call_id, index)
    state = seq.generate_state(2)
    np.random.seed(int(state[0]))
    random.seed(int(state[1]))
    _task_rng = np.random.default_rng(seq)


def clear_task_seed() -> None:
    global _task_rng
    _task_rng = None


def task_rng() -> np.random.Generator:
    """
    Return the random generator of the element currently running. Outside a reproducibly seeded element a generator is derived from numpy's global random state, so numpy.random.seed still makes sequential runs repeatable.

    Returns:
        numpy.random.Generator: Generator for the current element.
    """
    if _task_rng is not None:
        return _task_rng
    return np.random.default_rng(np.random.randint(0, 2**31 - 1))
