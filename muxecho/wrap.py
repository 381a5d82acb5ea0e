"""Socket helpers that retry interrupted calls and cope with short reads and writes."""

from __future__ import annotations

import socket

__all__ = [
    "tcp4bind",
    "accept",
    "read",
    "read_exact",
    "write_all",
    "LineReader",
]


def tcp4bind(port, ip=None):
    """Create an IPv4 TCP socket bound to ``ip`` (any address when None) and ``port``.

    Raises ValueError when ``ip`` is not a valid dotted IPv4 address and
    OSError when the bind itself fails.
    """
    if ip is None:
        host = ""
    else:
        try:
            socket.inet_pton(socket.AF_INET, ip)
        except OSError as exc:
            raise ValueError(f"invalid IPv4 address: {ip!r}") from exc
        host = ip
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
    except BaseException:
        sock.close()
        raise
    return sock


def accept(sock):
    """Accept a connection, retrying when it was aborted or interrupted."""
    while True:
        try:
            return sock.accept()
        except (ConnectionAbortedError, InterruptedError):
            continue


def read(sock, nbytes):
    """Read at most ``nbytes`` bytes; an empty result means the peer closed."""
    while True:
        try:
            return sock.recv(nbytes)
        except InterruptedError:
            continue


def read_exact(sock, n):
    """Read ``n`` bytes, or fewer if the peer closes before they all arrive."""
    received = bytearray()
    while len(received) < n:
        try:
            chunk = sock.recv(n - len(received))
        except InterruptedError:
            continue
        if not chunk:
            break
        received += chunk
    return bytes(received)


def write_all(sock, data):
    """Write every byte of ``data`` and return how many were written."""
    view = memoryview(data)
    while view:
        try:
            sent = sock.send(view)
        except InterruptedError:
            continue
        view = view[sent:]
    return len(data)


class LineReader:
    """Buffered line reader over a socket."""

    def __init__(self, sock, chunk_size=100):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._sock = sock
        self._chunk_size = chunk_size
        self._pending = b""

    def readline(self, maxlen):
        """Return the next line, newline included, holding at most ``maxlen - 1`` bytes.

        A line cut short by the limit is continued by the next call. At end of
        stream whatever was read is returned; an empty result means nothing
        was left.
        """
        if maxlen < 1:
            raise ValueError("maxlen must be positive")
        limit = maxlen - 1
        line = bytearray()
        while len(line) < limit:
            if not self._pending:
                self._pending = read(self._sock, self._chunk_size)
                if not self._pending:
                    break
            room = limit - len(line)
            newline = self._pending.find(b"\n", 0, room)
            take = room if newline < 0 else newline + 1
            line += self._pending[:take]
            self._pending = self._pending[take:]
            if newline >= 0:
                break
        return bytes(line)