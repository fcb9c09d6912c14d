#!/usr/bin/env python3

"""
parallelmap Socket Backend

This module implements the socket backend: a persistent pool of worker processes connected to the master over TCP. At session start the master opens an authenticated multiprocessing Listener on an ephemeral port, launches the workers (cpus local processes, or one process per entry of hosts where "localhost" entries run locally and every other host is reached through ssh), accepts one connection per worker within the connect timeout and orders the connections by worker number. The pool is reused by every dispatch of the session and torn down at session stop. With reproducible sessions one base seed is drawn from the master's random state at pool creation and sent to all workers. Local workers inherit the master's working directory and module search path so that mapped functions defined in importable modules resolve on the workers. A closed worker connection is reported to the scheduler as a lost worker; the dispatch fails with TaskError and the pool refuses further work until the session is restarted.

Classes:
    SocketWorkerPool: WorkerPool over multiprocessing connections.
    SocketHandle: Pool, scheduler and worker processes of a session.
    SocketProvider: Provider creating and tearing down the socket pool.

Date: November 2025
Version: 1.0.0
"""

import os
import secrets
import socket
import subprocess
import sys
import threading
from multiprocessing.connection import Listener, wait
from typing import Any, List, Optional, Set, Tuple

from ..core.constants import AUTHKEY_ENV, Mode
from ..core.exceptions import ResourceError
from ..core.seeding import draw_base_seed
from ..core.staging import StagedItems
from .base import BackendHandle, BackendProvider, TaskBatch, TaskOutcome
from .cluster import ClusterScheduler, WorkerLostError, WorkerPool
from .worker import ConnectionChannel, child_env

WORKER_MODULE = "parallelmap.backends.socket_worker"
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")
STOP_TIMEOUT = 5.0


class SocketWorkerPool(WorkerPool):

    def __init__(self, channels: List[ConnectionChannel]) -> None:
        self.channels = channels
        self.closed = False

    @property
    def n_workers(self) -> int:
        return len(self.channels)

    def send(self, worker: int, message: Any) -> None:
        try:
            self.channels[worker].send(message)
        except (EOFError, OSError) as e:
            raise WorkerLostError(worker, e) from e

    def recv(self, worker: int) -> Any:
        try:
            return self.channels[worker].recv()
        except (EOFError, OSError) as e:
            raise WorkerLostError(worker, e) from e

    def recv_any(self, pending: Set[int]) -> Tuple[int, Any]:
        by_conn = {self.channels[w].conn: w for w in pending}
        ready = wait(list(by_conn))
        worker = by_conn[ready[0]]
        return worker, self.recv(worker)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for channel in self.channels:
            try:
                channel.send(("stop",))
            except (OSError, EOFError):
                pass
            channel.close()


class SocketHandle(BackendHandle):

    def __init__(self, pool: SocketWorkerPool, scheduler: ClusterScheduler,
                 processes: List[subprocess.Popen], listener: Listener,
                 base_seed: Optional[int]) -> None:
        super().__init__()
        self.pool = pool
        self.scheduler = scheduler
        self.processes = processes
        self.listener = listener
        self.base_seed = base_seed


def worker_env(authkey: bytes) -> dict:
    env = child_env()
    env[AUTHKEY_ENV] = authkey.hex()
    return env


class SocketProvider(BackendProvider):

    mode = Mode.SOCKET

    def _worker_hosts(self) -> List[str]:
        if self.config.hosts is not None:
            return list(self.config.hosts)
        return ["localhost"] * self.config.cpus

    def _launch(self, host: str, worker_no: int, address: Tuple[str, int],
                authkey: bytes) -> subprocess.Popen:
        """
        Start one worker process. Local workers get the authkey through their environment; remote workers are started through ssh and read it from stdin so it never appears on a command line.

        Parameters:
            host (str): Host name of the worker.
            worker_no (int): Worker number reported back in the hello message.
            address (Tuple[str, int]): Address the worker connects to.
            authkey (bytes): Connection authentication key.

        Returns:
            subprocess.Popen: Worker process (the local ssh client for remote hosts).
        """
        target = f"{address[0]}:{address[1]}"
        if host in LOCAL_HOSTS:
            cmd = [sys.executable, "-m", WORKER_MODULE, "--address", target,
                   "--worker-no", str(worker_no)]
            return subprocess.Popen(cmd, env=worker_env(authkey), cwd=os.getcwd())

        remote = (f"python3 -m {WORKER_MODULE} --address {target} "
                  f"--worker-no {worker_no} --authkey-stdin")
        proc = subprocess.Popen(["ssh", host, remote], stdin=subprocess.PIPE)
        proc.stdin.write((authkey.hex() + "\n").encode())
        proc.stdin.flush()
        return proc

    def _accept(self, listener: Listener, n_workers: int,
                processes: List[subprocess.Popen]) -> List[ConnectionChannel]:
        """
        Accept one authenticated connection per worker within the connect timeout and order the channels by the worker number each worker reports in its hello message.
        """
        accepted: List[ConnectionChannel] = []
        errors: List[BaseException] = []

        def accept_all() -> None:
            try:
                while len(accepted) < n_workers:
                    accepted.append(ConnectionChannel(listener.accept()))
            except Exception as e:
                errors.append(e)

        acceptor = threading.Thread(target=accept_all, daemon=True)
        acceptor.start()
        acceptor.join(self.config.connect_timeout)

        if acceptor.is_alive() or errors or len(accepted) < n_workers:
            exited = [p.args for p in processes if p.poll() is not None]
            listener.close()
            for channel in accepted:
                channel.close()
            detail = f": {errors[0]}" if errors else ""
            raise ResourceError(
                f"Only {len(accepted)} of {n_workers} socket workers connected within "
                f"{self.config.connect_timeout:.0f}s{detail}"
                + (f" ({len(exited)} worker process(es) exited)" if exited else ""))

        ordered = [None] * n_workers
        for channel in accepted:
            tag, worker_no, ident = channel.recv()
            ordered[worker_no] = channel
            self.logger.debug(f"Socket worker {worker_no} connected from {ident}")
        return ordered

    def create(self) -> SocketHandle:
        hosts = self._worker_hosts()
        all_local = all(h in LOCAL_HOSTS for h in hosts)

        authkey = secrets.token_bytes(32)
        bind_host = "127.0.0.1" if all_local else "0.0.0.0"
        listener = Listener((bind_host, 0), family="AF_INET", authkey=authkey)
        port = listener.address[1]

        if all_local:
            connect_host = "127.0.0.1"
        else:
            connect_host = self.config.master_address or socket.getfqdn()

        processes = [self._launch(host, no, (connect_host, port), authkey)
                     for no, host in enumerate(hosts)]

        try:
            channels = self._accept(listener, len(hosts), processes)
        except ResourceError:
            self._terminate(processes)
            raise

        pool = SocketWorkerPool(channels)
        scheduler = ClusterScheduler(pool, load_balancing=self.config.load_balancing)
        handle = SocketHandle(pool, scheduler, processes, listener, None)

        if self.config.reproducible:
            handle.base_seed = draw_base_seed()
            try:
                scheduler.seed(handle.base_seed)
            except Exception:
                self.destroy(handle)
                raise

        return handle

    def push(self, handle: SocketHandle, staged: StagedItems) -> None:
        handle.scheduler.push(staged)

    def execute(self, handle: SocketHandle, batch: TaskBatch) -> List[TaskOutcome]:
        return handle.scheduler.execute(batch)

    def _terminate(self, processes: List[subprocess.Popen]) -> None:
        for proc in processes:
            try:
                proc.wait(timeout=STOP_TIMEOUT)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()

    def destroy(self, handle: SocketHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        handle.pool.close()
        handle.listener.close()
        self._terminate(handle.processes)
