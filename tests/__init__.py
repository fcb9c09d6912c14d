#!/usr/bin/env python3
"""
parallelmap test suite.

Tests Performed:
    - test_config: option validation, YAML round trip, default layering, per-mode records
    - test_levels: level registry and listing
    - test_utils: logger, storage directory helpers, performance monitor, seeding
    - test_session: lifecycle state machine and start validation
    - test_dispatcher: gating, fallback, error handling and result shaping
    - test_multiprocess_backend: fork pool dispatches, logging and closures
    - test_socket_backend: persistent TCP worker pool, staging and reproducibility
    - test_mpi_backend: cluster scheduling over a fake intercommunicator, live MPI when available
    - test_batchqueue_backend: registry, local and templated job submission
    - test_cli: options and cleanup commands

Run with ``pytest tests``.
"""
