"""Callback-driven echo server with a fixed table of event slots and idle timeouts."""

from __future__ import annotations

import argparse
import contextlib
import selectors
import socket
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

__all__ = [
    "EventSlot",
    "Reactor",
    "main",
    "SERV_PORT",
    "MAX_EVENTS",
    "BUFLEN",
    "IDLE_TIMEOUT",
    "SWEEP_BATCH",
]

SERV_PORT = 8080
MAX_EVENTS = 1024
BUFLEN = 4096
IDLE_TIMEOUT = 60
SWEEP_BATCH = 100
BACKLOG = 20

READ = selectors.EVENT_READ
WRITE = selectors.EVENT_WRITE


def _as_text(data):
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


@dataclass(eq=False)
class EventSlot:
    """One entry in the reactor's table: a socket, what it waits for and what to call."""

    index: int
    sock: Optional[socket.socket] = None
    events: int = 0
    callback: Optional[Callable[["EventSlot"], None]] = None
    active: bool = False
    buf: bytes = b""
    last_active: float = 0.0

    @property
    def fd(self):
        return -1 if self.sock is None else self.sock.fileno()


class Reactor:
    """Echo server whose sockets take turns between waiting to read and to write.

    Client slots number ``max_events``; the listening socket has a slot of its
    own after them. Clients that stay unchanged for ``idle_timeout`` seconds
    are closed by :meth:`sweep_idle`, which checks a batch of slots per call.
    """

    def __init__(
        self,
        host="",
        port=SERV_PORT,
        max_events=MAX_EVENTS,
        idle_timeout=IDLE_TIMEOUT,
        clock=time.time,
    ):
        if max_events < 1:
            raise ValueError("max_events must be positive")
        if idle_timeout < 0:
            raise ValueError("idle_timeout must not be negative")
        self.max_events = max_events
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._cursor = 0
        self._slots = [EventSlot(i) for i in range(max_events + 1)]
        self._selector = selectors.DefaultSelector()
        self.sock = socket.create_server((host, port), backlog=BACKLOG)
        self.sock.setblocking(False)
        listener = self._slots[max_events]
        self._set(listener, self.sock, self._accept)
        self._add(listener, READ)

    @property
    def address(self):
        return self.sock.getsockname()

    @property
    def connections(self):
        """Live client sockets keyed by slot index."""
        return {slot.index: slot.sock for slot in self._slots[:-1] if slot.active}

    def _set(self, slot, sock, callback):
        slot.sock = sock
        slot.callback = callback
        slot.events = 0
        slot.last_active = self._clock()

    def _add(self, slot, events):
        op = "MOD" if slot.active else "ADD"
        try:
            if slot.active:
                self._selector.modify(slot.sock, events, slot)
            else:
                self._selector.register(slot.sock, events, slot)
        except (OSError, ValueError, KeyError):
            print(f"event add failed [fd={slot.fd}], events[{events}]", flush=True)
            return
        slot.events = events
        slot.active = True
        print(f"event add OK [fd={slot.fd}], op={op}, events[{events:X}]", flush=True)

    def _del(self, slot):
        if not slot.active:
            return
        slot.active = False
        with contextlib.suppress(KeyError, ValueError, OSError):
            self._selector.unregister(slot.sock)

    def _accept(self, slot):
        try:
            conn, (ip, port) = self.sock.accept()
        except OSError as exc:
            print(f"accept, {exc}", flush=True)
            return
        free = next((s for s in self._slots[:-1] if not s.active), None)
        if free is None:
            print(f"max connect limit[{self.max_events}]", flush=True)
            conn.close()
            return
        conn.setblocking(False)
        self._set(free, conn, self._recv)
        self._add(free, READ)
        print(
            f"new connect [{ip}:{port}][time:{int(free.last_active)}], pos[{free.index}]",
            flush=True,
        )

    def _recv(self, slot):
        fd = slot.fd
        try:
            data = slot.sock.recv(BUFLEN)
        except BlockingIOError:
            return
        except OSError as exc:
            self._del(slot)
            slot.sock.close()
            print(f"recv[fd={fd}] error: {exc}", flush=True)
            return
        self._del(slot)
        if data:
            slot.buf = data
            print(f"C[{fd}]:{_as_text(data)}", flush=True)
            self._set(slot, slot.sock, self._send)
            self._add(slot, WRITE)
        else:
            slot.sock.close()
            print(f"[fd={fd}] pos[{slot.index}], closed", flush=True)

    def _send(self, slot):
        fd = slot.fd
        try:
            sent = slot.sock.send(slot.buf)
        except BlockingIOError:
            return
        except OSError as exc:
            self._del(slot)
            slot.sock.close()
            print(f"send[fd={fd}] error {exc}", flush=True)
            return
        if sent <= 0:
            self._del(slot)
            slot.sock.close()
            print(f"send[fd={fd}] error: nothing sent", flush=True)
            return
        print(f"send[fd={fd}], [{sent}]{_as_text(slot.buf[:sent])}", flush=True)
        slot.buf = slot.buf[sent:]
        if slot.buf:
            return
        self._del(slot)
        self._set(slot, slot.sock, self._recv)
        self._add(slot, READ)

    def sweep_idle(self, now=None):
        """Close clients idle for at least ``idle_timeout``; return their slot indices.

        Checks ``SWEEP_BATCH`` client slots, carrying on from where the last
        call stopped and wrapping round the table.
        """
        if now is None:
            now = self._clock()
        expired = []
        for _ in range(SWEEP_BATCH):
            if self._cursor >= self.max_events:
                self._cursor = 0
            slot = self._slots[self._cursor]
            self._cursor += 1
            if not slot.active:
                continue
            if now - slot.last_active >= self.idle_timeout:
                fd = slot.fd
                self._del(slot)
                slot.sock.close()
                print(f"[fd={fd}] timeout", flush=True)
                expired.append(slot.index)
        return expired

    def run_once(self, timeout=1.0):
        """Sweep idle clients, wait up to ``timeout`` seconds and dispatch ready slots.

        Returns the number of ready sockets.
        """
        self.sweep_idle()
        events = self._selector.select(timeout)
        for key, mask in events:
            slot = key.data
            if mask & READ and slot.events & READ:
                slot.callback(slot)
            if mask & WRITE and slot.events & WRITE:
                slot.callback(slot)
        return len(events)

    def serve_forever(self):
        """Run the event loop until interrupted."""
        while True:
            self.run_once(1.0)

    def close(self):
        for slot in self._slots:
            if slot.active:
                self._del(slot)
                slot.sock.close()
        self.sock.close()
        self._selector.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def main(argv=None):
    """Run the reactor echo server on the given port."""
    parser = argparse.ArgumentParser(description="Callback-driven TCP echo server")
    parser.add_argument("port", nargs="?", type=int, default=SERV_PORT)
    parser.add_argument("--host", default="")
    parser.add_argument("--max-events", type=int, default=MAX_EVENTS)
    parser.add_argument("--idle-timeout", type=float, default=IDLE_TIMEOUT)
    args = parser.parse_args(argv)
    try:
        reactor = Reactor(args.host, args.port, args.max_events, args.idle_timeout)
    except (OSError, ValueError) as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"server running:port[{args.port}]", flush=True)
    with reactor:
        try:
            reactor.serve_forever()
        except KeyboardInterrupt:
            return 0
        except OSError as exc:
            print(f"wait error: {exc}", file=sys.stderr)
            return 1
    return 0