#!/usr/bin/env python3

"""
parallelmap Performance Monitoring Utilities

This module provides lightweight timing of dispatches for the parallelization session. It implements the PerformanceMonitor class that captures elapsed time for named operations through a context manager, stores the durations in memory, reports each duration through the package logger at DEBUG level when the context exits, and produces summaries on demand. The dispatcher times every parallel map call with it so that slow backends or unbalanced workloads can be spotted from the debug log without an external profiler.

Classes:
    PerformanceMonitor: Context-manager based timing of named operations.

Date: November 2025
Version: 1.0.0
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional
from contextlib import contextmanager

from .utils_logger import get_logger


class PerformanceMonitor:
    """
    Records elapsed time of named operations. Durations of an operation name are overwritten by the next measurement of the same name; get_summary returns the latest duration per name.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.start_times: Dict[str, datetime] = {}
        self.durations: Dict[str, timedelta] = {}
        self.logger = logger or get_logger("monitor")

    @contextmanager
    def timer(self, operation_name: str):
        """
        Measure the wall time of the wrapped block, including blocks that raise. The duration is stored under operation_name and logged at DEBUG level.

        Parameters:
            operation_name (str): Name of the timed operation.

        Yields:
            None
        """
        start_time = datetime.now()
        self.start_times[operation_name] = start_time

        try:
            yield
        finally:
            duration = datetime.now() - start_time
            self.durations[operation_name] = duration
            self.logger.debug(f"{operation_name} completed in {duration.total_seconds():.2f} seconds")

    def reset(self) -> None:
        self.start_times.clear()
        self.durations.clear()

    def get_summary(self) -> Dict[str, float]:
        return {name: duration.total_seconds()
                for name, duration in self.durations.items()}

    def log_summary(self) -> None:
        self.logger.info("=== Performance Summary ===")
        for name, duration in self.durations.items():
            self.logger.info(f"{name}: {duration.total_seconds():.2f} seconds")

        if self.durations:
            total_time = sum(d.total_seconds() for d in self.durations.values())
            self.logger.info(f"Total time: {total_time:.2f} seconds")
