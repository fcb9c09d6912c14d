#!/usr/bin/env python3

"""
Socket worker entry point.

Started by the socket backend as ``python -m parallelmap.backends.socket_worker --address HOST:PORT --worker-no N``. The worker connects back to the master, announces its number and serves master messages until told to stop or the connection closes. The connection authkey is read from the PARALLELMAP_AUTHKEY environment variable, or from the first line of stdin with --authkey-stdin.
"""

import argparse
import os
import sys
from multiprocessing.connection import Client

from ..core.constants import AUTHKEY_ENV
from .worker import ConnectionChannel, WorkerRuntime


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="parallelmap socket worker")
    parser.add_argument('--address', type=str, required=True,
                        help='Master address as HOST:PORT')
    parser.add_argument('--worker-no', type=int, required=True,
                        help='Worker number assigned by the master')
    parser.add_argument('--authkey-stdin', action='store_true',
                        help='Read the hex authkey from stdin instead of the environment')
    return parser


def main(argv=None) -> int:
    args = create_parser().parse_args(argv)

    if args.authkey_stdin:
        authkey_hex = sys.stdin.readline().strip()
    else:
        authkey_hex = os.environ.get(AUTHKEY_ENV, "")
    if not authkey_hex:
        print("parallelmap socket worker: no authkey given", file=sys.stderr)
        return 2

    host, port = args.address.rsplit(":", 1)
    conn = Client((host, int(port)), family="AF_INET", authkey=bytes.fromhex(authkey_hex))
    channel = ConnectionChannel(conn)
    runtime = WorkerRuntime(channel)

    channel.send(("hello", args.worker_no, runtime.worker_id))
    try:
        runtime.serve()
    finally:
        channel.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
