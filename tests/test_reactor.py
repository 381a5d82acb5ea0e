import socket

import pytest

from muxecho.reactor import Reactor


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _wait_for_connections(reactor, count, rounds=50):
    for _ in range(rounds):
        if len(reactor.connections) >= count:
            break
        reactor.run_once(0.05)
    return len(reactor.connections)


def _pump(reactor, client, size, rounds=60):
    received = b""
    client.settimeout(0.05)
    for _ in range(rounds):
        reactor.run_once(0.05)
        try:
            chunk = client.recv(4096)
        except TimeoutError:
            continue
        if not chunk:
            break
        received += chunk
        if len(received) >= size:
            break
    return received


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reactor(clock):
    with Reactor("127.0.0.1", 0, max_events=4, idle_timeout=60, clock=clock) as r:
        yield r


def test_echo_round_trip(reactor):
    with socket.create_connection(reactor.address) as client:
        assert _wait_for_connections(reactor, 1) == 1
        client.sendall(b"ping")
        assert _pump(reactor, client, 4) == b"ping"


def test_returns_to_reading_after_send(reactor):
    with socket.create_connection(reactor.address) as client:
        _wait_for_connections(reactor, 1)
        for message in (b"first", b"second message"):
            client.sendall(message)
            assert _pump(reactor, client, len(message)) == message
        assert list(reactor.connections) == [0]


def test_clients_take_separate_slots(reactor):
    with socket.create_connection(reactor.address) as a, socket.create_connection(
        reactor.address
    ) as b:
        assert _wait_for_connections(reactor, 2) == 2
        assert sorted(reactor.connections) == [0, 1]
        b.sendall(b"from b")
        a.sendall(b"from a")
        assert _pump(reactor, b, 6) == b"from b"
        assert _pump(reactor, a, 6) == b"from a"


def test_client_close_frees_slot(reactor, capsys):
    client = socket.create_connection(reactor.address)
    _wait_for_connections(reactor, 1)
    client.close()
    for _ in range(50):
        if not reactor.connections:
            break
        reactor.run_once(0.05)
    assert reactor.connections == {}
    assert "closed" in capsys.readouterr().out


def test_idle_client_is_timed_out(reactor, clock):
    with socket.create_connection(reactor.address) as client:
        _wait_for_connections(reactor, 1)
        assert reactor.sweep_idle(clock.now + 59) == []
        assert list(reactor.connections) == [0]
        assert reactor.sweep_idle(clock.now + 60) == [0]
        assert reactor.connections == {}
        client.settimeout(1.0)
        assert client.recv(16) == b""


def test_run_once_sweeps_with_clock(reactor, clock):
    with socket.create_connection(reactor.address) as client:
        _wait_for_connections(reactor, 1)
        clock.now += 120
        reactor.run_once(0.01)
        assert reactor.connections == {}
        client.settimeout(1.0)
        assert client.recv(16) == b""


def test_activity_resets_idle_time(reactor, clock):
    with socket.create_connection(reactor.address) as client:
        _wait_for_connections(reactor, 1)
        clock.now += 50
        client.sendall(b"keep")
        assert _pump(reactor, client, 4) == b"keep"
        assert reactor.sweep_idle(clock.now + 30) == []
        assert list(reactor.connections) == [0]


def test_listener_is_never_swept(reactor, clock):
    assert reactor.sweep_idle(clock.now + 10_000) == []
    with socket.create_connection(reactor.address):
        assert _wait_for_connections(reactor, 1) == 1


def test_connection_limit(clock, capsys):
    with Reactor("127.0.0.1", 0, max_events=1, clock=clock) as reactor:
        with socket.create_connection(reactor.address) as first:
            _wait_for_connections(reactor, 1)
            with socket.create_connection(reactor.address) as second:
                second.settimeout(0.05)
                closed = False
                for _ in range(50):
                    reactor.run_once(0.05)
                    try:
                        closed = second.recv(16) == b""
                    except TimeoutError:
                        continue
                    break
                assert closed
            assert list(reactor.connections) == [0]
            first.sendall(b"still here")
            assert _pump(reactor, first, 10) == b"still here"
    assert "max connect limit[1]" in capsys.readouterr().out


def test_max_events_must_be_positive():
    with pytest.raises(ValueError):
        Reactor("127.0.0.1", 0, max_events=0)


def test_idle_timeout_must_not_be_negative():
    with pytest.raises(ValueError):
        Reactor("127.0.0.1", 0, idle_timeout=-1)