"""TCP echo server multiplexed with select()."""

from __future__ import annotations

import argparse
import contextlib
import select
import socket

from muxecho.udp import _as_text, _complain
from muxecho.wrap import accept, read, write_all

__all__ = ["upper", "SelectEchoServer", "main", "PORT", "MAX_CLIENTS", "BUFFER_SIZE"]

PORT = 8888
MAX_CLIENTS = 1024
BUFFER_SIZE = 8192
BACKLOG = 128


def upper(data):
    """Return ``data`` with ASCII letters upper-cased; other bytes are kept."""
    return bytes(data).upper()


def _require_positive(**limits):
    for name, value in limits.items():
        if value < 1:
            raise ValueError(f"{name} must be positive")


def _announce(peer):
    ip, port = peer
    print(f"received from {ip} at PORT {port}", flush=True)


class _Listener:
    """A listening TCP socket shared by the multiplexing servers."""

    def __init__(self, host, port):
        self.sock = socket.create_server((host, port), backlog=BACKLOG)

    @property
    def address(self):
        return self.sock.getsockname()


def _tcp_parser(description, port):
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--host", default="")
    parser.add_argument("--port", type=int, default=port)
    return parser


def _serve(make_server):
    """Build a server and run it until it fails or is interrupted; return an exit status."""
    try:
        server = make_server()
    except (OSError, ValueError) as exc:
        _complain(exc)
        return 1
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            return 0
        except (OSError, RuntimeError) as exc:
            _complain(exc)
            return 1
    return 0


class SelectEchoServer(_Listener):
    """Accepts TCP clients and echoes what each one sends, optionally transformed."""

    def __init__(self, host="", port=PORT, transform=None, max_clients=MAX_CLIENTS):
        _require_positive(max_clients=max_clients)
        self.transform = transform
        self.max_clients = max_clients
        super().__init__(host, port)
        self._clients = []

    @property
    def clients(self):
        """The connected client sockets, in the order they were accepted."""
        return tuple(self._clients)

    def poll_once(self, timeout=None):
        """Wait up to ``timeout`` seconds (forever when None) and serve what is ready.

        Returns the number of sockets that were ready. Raises RuntimeError when
        a new connection would exceed ``max_clients``.
        """
        readable, _, _ = select.select([self.sock, *self._clients], [], [], timeout)
        ready = set(readable)
        if self.sock in ready:
            self._accept()
        for conn in [c for c in self._clients if c in ready]:
            self._service(conn)
        return len(readable)

    def serve_forever(self):
        """Serve clients until select fails or the client limit is exceeded."""
        while True:
            self.poll_once(None)

    def _accept(self):
        conn, peer = accept(self.sock)
        if len(self._clients) >= self.max_clients:
            conn.close()
            raise RuntimeError("too many clients")
        _announce(peer)
        self._clients.append(conn)

    def _service(self, conn):
        try:
            data = read(conn, BUFFER_SIZE)
        except OSError as exc:
            _complain(exc)
            self._drop(conn)
            return
        if not data:
            print("client close", flush=True)
            self._drop(conn)
            return
        reply = self.transform(data) if self.transform is not None else data
        with contextlib.suppress(OSError):
            write_all(conn, reply)
        print(_as_text(reply), flush=True)

    def _drop(self, conn):
        self._clients.remove(conn)
        conn.close()

    def close(self):
        while self._clients:
            self._drop(self._clients[0])
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def main(argv=None):
    """Run the select-based echo server."""
    parser = _tcp_parser("TCP echo server using select", PORT)
    parser.add_argument("--upper", action="store_true", help="echo upper-cased data")
    parser.add_argument("--max-clients", type=int, default=MAX_CLIENTS)
    args = parser.parse_args(argv)
    transform = upper if args.upper else None
    return _serve(
        lambda: SelectEchoServer(args.host, args.port, transform, args.max_clients)
    )