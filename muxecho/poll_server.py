"""Upper-casing TCP echo server multiplexed with poll()."""

from __future__ import annotations

import contextlib
import itertools
import select

from muxecho.select_server import (
    _announce,
    _Listener,
    _require_positive,
    _serve,
    _tcp_parser,
    upper,
)
from muxecho.wrap import accept, read, write_all

__all__ = ["PollEchoServer", "main", "PORT", "MAX_CLIENTS", "CHUNK_SIZE"]

PORT = 8000
MAX_CLIENTS = 1023
CHUNK_SIZE = 80

_READY = select.POLLIN | select.POLLHUP | select.POLLERR


class PollEchoServer(_Listener):
    """Accepts TCP clients into numbered slots and echoes their data upper-cased."""

    def __init__(self, host="", port=PORT, max_clients=MAX_CLIENTS, chunk_size=CHUNK_SIZE):
        _require_positive(max_clients=max_clients, chunk_size=chunk_size)
        self.max_clients = max_clients
        self.chunk_size = chunk_size
        super().__init__(host, port)
        self._poller = select.poll()
        self._poller.register(self.sock, select.POLLIN)
        self._slots = {}

    @property
    def clients(self):
        """Connected clients keyed by slot number, counting from 1."""
        return dict(self._slots)

    def poll_once(self, timeout=None):
        """Wait up to ``timeout`` seconds (forever when None) and serve what is ready.

        Returns the number of descriptors poll reported. Raises RuntimeError
        when a new connection would exceed ``max_clients`` and OSError on a
        read error other than a reset connection.
        """
        millis = None if timeout is None else int(timeout * 1000)
        events = self._poller.poll(millis)
        ready = {fd for fd, mask in events if mask & _READY}
        if self.sock.fileno() in ready:
            self._accept()
        for slot, conn in sorted(self._slots.items()):
            if conn.fileno() in ready:
                self._service(slot, conn)
        return len(events)

    def serve_forever(self):
        """Serve clients until an unrecoverable error occurs."""
        while True:
            self.poll_once(None)

    def _accept(self):
        conn, peer = accept(self.sock)
        _announce(peer)
        slot = next(n for n in itertools.count(1) if n not in self._slots)
        if slot > self.max_clients:
            conn.close()
            raise RuntimeError("too many clients")
        self._slots[slot] = conn
        self._poller.register(conn, select.POLLIN)

    def _service(self, slot, conn):
        try:
            data = read(conn, self.chunk_size)
        except ConnectionResetError:
            data, outcome = None, "aborted"
        else:
            outcome = "closed"
        if not data:
            print(f"client[{slot}] {outcome} connection", flush=True)
            self._drop(slot)
            return
        with contextlib.suppress(OSError):
            write_all(conn, upper(data))

    def _drop(self, slot):
        conn = self._slots.pop(slot)
        self._poller.unregister(conn)
        conn.close()

    def close(self):
        for slot in list(self._slots):
            self._drop(slot)
        with contextlib.suppress(KeyError, ValueError):
            self._poller.unregister(self.sock)
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def main(argv=None):
    """Run the poll-based upper-casing echo server."""
    parser = _tcp_parser("TCP upper-casing echo server using poll", PORT)
    parser.add_argument("--max-clients", type=int, default=MAX_CLIENTS)
    parser.add_argument("--chunk-size", type=int, default=CHUNK_SIZE)
    args = parser.parse_args(argv)
    return _serve(
        lambda: PollEchoServer(args.host, args.port, args.max_clients, args.chunk_size)
    )