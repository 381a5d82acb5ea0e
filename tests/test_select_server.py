import socket

import pytest

from muxecho.select_server import SelectEchoServer, main, upper


@pytest.fixture
def make_server():
    servers = []

    def factory(**kwargs):
        srv = SelectEchoServer("127.0.0.1", 0, **kwargs)
        servers.append(srv)
        return srv

    yield factory
    for srv in servers:
        srv.close()


@pytest.fixture
def server(make_server):
    return make_server()


def _connect(srv):
    client = socket.create_connection(srv.address, timeout=2)
    srv.poll_once(2.0)
    return client


@pytest.mark.parametrize(
    "data, expected",
    [(b"hello, World 123", b"HELLO, WORLD 123"), (b"\xe9abc", b"\xe9ABC")],
)
def test_upper_changes_ascii_letters_only(data, expected):
    assert upper(data) == expected


def test_upper_keeps_length_and_is_idempotent():
    data = bytes(range(256))
    result = upper(data)
    assert len(result) == len(data)
    assert upper(result) == result


@pytest.mark.parametrize(
    "transform, sent, expected",
    [(None, b"hello there", b"hello there"), (upper, b"ping", b"PING")],
)
def test_echo_round_trip(make_server, transform, sent, expected, capsys):
    srv = make_server(transform=transform)
    with _connect(srv) as client:
        client.sendall(sent)
        srv.poll_once(2.0)
        assert client.recv(100) == expected
    assert expected.decode() in capsys.readouterr().out


def test_accept_is_announced(server, capsys):
    with _connect(server):
        assert "received from 127.0.0.1" in capsys.readouterr().out
        assert len(server.clients) == 1


def test_client_close_removes_client(server, capsys):
    client = _connect(server)
    client.close()
    server.poll_once(2.0)
    assert server.clients == ()
    assert "client close" in capsys.readouterr().out


def test_clients_are_served_independently(server):
    with _connect(server) as first, _connect(server) as second:
        first.sendall(b"one")
        second.sendall(b"two")
        server.poll_once(2.0)
        assert (first.recv(100), second.recv(100)) == (b"one", b"two")


def test_timeout_with_nothing_ready(server):
    assert server.poll_once(0.05) == 0
    assert server.clients == ()


def test_too_many_clients_raises(make_server):
    srv = make_server(max_clients=1)
    with _connect(srv), socket.create_connection(srv.address, timeout=2):
        with pytest.raises(RuntimeError, match="too many clients"):
            srv.poll_once(2.0)
        assert len(srv.clients) == 1


def test_invalid_max_clients():
    with pytest.raises(ValueError):
        SelectEchoServer("127.0.0.1", 0, max_clients=0)


def test_context_manager_closes_everything():
    with SelectEchoServer("127.0.0.1", 0) as srv:
        client = _connect(srv)
        accepted = srv.clients[0]
    client.close()
    assert (srv.sock.fileno(), accepted.fileno(), srv.clients) == (-1, -1, ())


def test_main_reports_bind_failure():
    with socket.create_server(("127.0.0.1", 0)) as taken:
        port = taken.getsockname()[1]
        assert main(["--host", "127.0.0.1", "--port", str(port)]) == 1