"""Edge-style echo server that drains each ready socket, and a pipe watcher."""

from __future__ import annotations

import contextlib
import itertools
import os
import selectors
import sys
import threading
import time

from muxecho.select_server import (
    _announce,
    _Listener,
    _require_positive,
    _serve,
    _tcp_parser,
)
from muxecho.udp import _as_text, _complain
from muxecho.wrap import accept, write_all

__all__ = [
    "EdgeEchoServer",
    "produce_letters",
    "pipe_messages",
    "main",
    "PORT",
    "CHUNK_SIZE",
    "PIPE_READ_SIZE",
    "LETTER_COUNT",
]

PORT = 8888
CHUNK_SIZE = 4
PIPE_READ_SIZE = 128
LETTER_COUNT = 5


class EdgeEchoServer(_Listener):
    """Echoes client data back; each ready client is read until its buffer is empty.

    Client sockets are non-blocking, so a read that finds nothing more ends the
    drain instead of waiting. Every chunk received is also written to ``out``
    (standard output's byte stream when None).
    """

    def __init__(self, host="", port=PORT, chunk_size=CHUNK_SIZE, out=None):
        _require_positive(chunk_size=chunk_size)
        self.chunk_size = chunk_size
        self.out = out
        super().__init__(host, port)
        self._selector = selectors.DefaultSelector()
        self._selector.register(self.sock, selectors.EVENT_READ)
        self._clients = []

    @property
    def clients(self):
        """The connected client sockets, in the order they were accepted."""
        return tuple(self._clients)

    def poll_once(self, timeout=None):
        """Wait up to ``timeout`` seconds (forever when None) and serve what is ready.

        Returns the number of sockets that were ready.
        """
        events = self._selector.select(timeout)
        for key, _ in events:
            if key.fileobj is self.sock:
                self._accept()
            else:
                self._drain(key.fileobj)
        return len(events)

    def serve_forever(self):
        """Serve clients until interrupted."""
        while True:
            self.poll_once(None)

    def _accept(self):
        conn, peer = accept(self.sock)
        _announce(peer)
        conn.setblocking(False)
        self._selector.register(conn, selectors.EVENT_READ)
        self._clients.append(conn)

    def _drain(self, conn):
        while True:
            try:
                data = conn.recv(self.chunk_size)
            except BlockingIOError:
                return
            except OSError as exc:
                _complain(exc)
                self._drop(conn)
                return
            if not data:
                print("client close", flush=True)
                self._drop(conn)
                return
            self._emit(data)
            with contextlib.suppress(OSError):
                write_all(conn, data)

    def _emit(self, data):
        stream = self.out if self.out is not None else sys.stdout.buffer
        stream.write(data)
        with contextlib.suppress(AttributeError):
            stream.flush()

    def _drop(self, conn):
        with contextlib.suppress(KeyError, ValueError):
            self._selector.unregister(conn)
        self._clients.remove(conn)
        conn.close()

    def close(self):
        while self._clients:
            self._drop(self._clients[0])
        with contextlib.suppress(KeyError, ValueError):
            self._selector.unregister(self.sock)
        self._selector.close()
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def produce_letters(fd, interval=3.0, count=None):
    """Write runs of one letter to ``fd``, starting at 'a' and moving on each time.

    Each message is ``LETTER_COUNT`` copies of the letter, written after
    sleeping ``interval`` seconds. Writes forever when ``count`` is None.
    """
    numbers = itertools.count() if count is None else range(count)
    for n in numbers:
        time.sleep(interval)
        os.write(fd, bytes([(ord("a") + n) % 256]) * LETTER_COUNT)


def pipe_messages(fd):
    """Yield what arrives on the readable descriptor ``fd`` until end of file or error.

    The descriptor is closed once the generator finishes.
    """
    selector = selectors.DefaultSelector()
    try:
        selector.register(fd, selectors.EVENT_READ)
        while True:
            if not selector.select():
                continue
            try:
                data = os.read(fd, PIPE_READ_SIZE)
            except OSError:
                break
            if not data:
                break
            yield data
    finally:
        selector.close()
        os.close(fd)


def _watch_pipe(interval):
    read_end, write_end = os.pipe()
    producer = threading.Thread(
        target=produce_letters, args=(write_end, interval), daemon=True
    )
    producer.start()
    for message in pipe_messages(read_end):
        print(_as_text(message), flush=True)


def main(argv=None):
    """Run the echo server, or with --pipe watch a pipe fed by a letter producer."""
    parser = _tcp_parser("TCP echo server draining ready sockets", PORT)
    parser.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    parser.add_argument("--pipe", action="store_true", help="watch a pipe instead of serving")
    parser.add_argument("--interval", type=float, default=3.0)
    args = parser.parse_args(argv)
    if args.pipe:
        with contextlib.suppress(KeyboardInterrupt):
            _watch_pipe(args.interval)
        return 0
    return _serve(lambda: EdgeEchoServer(args.host, args.port, args.chunk_size))