"""UDP echo server and interactive client."""

from __future__ import annotations

import argparse
import socket
import sys

__all__ = ["UdpEchoServer", "UdpClient", "server_main", "client_main", "DATAGRAM_SIZE"]

DATAGRAM_SIZE = 1500

SERVER_ADDRESS = ("127.0.0.1", 8888)
CLIENT_ADDRESS = ("127.0.0.1", 9000)


def _as_text(data):
    """Render bytes the way a C string would print: up to the first NUL."""
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _complain(exc):
    print(exc, file=sys.stderr)


def _construct(factory, *args):
    """Build an object, reporting an OSError on stderr and returning None instead."""
    try:
        return factory(*args)
    except OSError as exc:
        _complain(exc)
        return None


def _bound_udp_socket(address):
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind(tuple(address))
    except BaseException:
        sock.close()
        raise
    return sock


def _parser(description, address):
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--host", default=address[0])
    parser.add_argument("--port", type=int, default=address[1])
    return parser


class UdpEchoServer:
    """Receives datagrams, prints them and sends each one back to its sender."""

    def __init__(self, host="127.0.0.1", port=8888):
        self.sock = _bound_udp_socket((host, port))

    @property
    def address(self):
        return self.sock.getsockname()

    def handle_one(self, out=None):
        """Echo one datagram; return the data and the sender's address."""
        data, sender = self.sock.recvfrom(DATAGRAM_SIZE)
        print(_as_text(data), file=sys.stdout if out is None else out)
        self.sock.sendto(data, sender)
        return data, sender

    def serve_forever(self, out=None):
        """Echo datagrams until receiving fails."""
        while True:
            try:
                self.handle_one(out)
            except OSError as exc:
                _complain(exc)
                break

    def close(self):
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class UdpClient:
    """Sends a datagram to a server and waits for the reply."""

    def __init__(self, bind_addr=CLIENT_ADDRESS, server_addr=SERVER_ADDRESS):
        self.sock = _bound_udp_socket(bind_addr)
        self.server_addr = tuple(server_addr)

    def exchange(self, data):
        """Send ``data`` to the server and return the next datagram received."""
        self.sock.sendto(data, self.server_addr)
        reply, _ = self.sock.recvfrom(DATAGRAM_SIZE)
        return reply

    def close(self):
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def server_main(argv=None):
    """Run the UDP echo server."""
    args = _parser("UDP echo server", SERVER_ADDRESS).parse_args(argv)
    server = _construct(UdpEchoServer, args.host, args.port)
    if server is None:
        return 1
    with server:
        server.serve_forever()
    return 0


def _chunks(stream):
    while chunk := stream.read1(DATAGRAM_SIZE):
        yield chunk


def client_main(argv=None):
    """Send standard input to the server chunk by chunk and print each reply."""
    parser = _parser("UDP echo client", CLIENT_ADDRESS)
    parser.add_argument("--server-host", default=SERVER_ADDRESS[0])
    parser.add_argument("--server-port", type=int, default=SERVER_ADDRESS[1])
    args = parser.parse_args(argv)
    client = _construct(
        UdpClient, (args.host, args.port), (args.server_host, args.server_port)
    )
    if client is None:
        return 1
    with client:
        for chunk in _chunks(sys.stdin.buffer):
            try:
                reply = client.exchange(chunk)
            except OSError as exc:
                _complain(exc)
                continue
            print(_as_text(reply), flush=True)
    return 0