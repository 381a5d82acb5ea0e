# muxecho

A small collection of echo servers that show different ways one process
can serve many connections at once. Each server is also a class you can
drive yourself, one iteration at a time.

| Command              | Module                  | What it does |
|----------------------|-------------------------|--------------|
| `muxecho-udp-server` | `muxecho.udp`           | UDP echo server, by default on 127.0.0.1:8888; prints each datagram and sends it back |
| `muxecho-udp-client` | `muxecho.udp`           | Binds 127.0.0.1:9000, sends what it reads from standard input to 127.0.0.1:8888 and prints each reply |
| `muxecho-select`     | `muxecho.select_server` | TCP echo server on port 8888 driven by `select`; `--upper` upper-cases replies |
| `muxecho-poll`       | `muxecho.poll_server`   | TCP server on port 8000 driven by `poll`, replies in upper case |
| `muxecho-epoll`      | `muxecho.epoll_server`  | Non-blocking TCP echo server on port 8888 that reads each ready client until it has nothing more; `--pipe` instead watches a pipe fed with runs of letters |
| `muxecho-reactor`    | `muxecho.reactor`       | Callback reactor on port 8080 (or the port given as argument) that alternates read and write interest per connection and closes idle clients |

Every command accepts `--help`. The TCP servers take `--host` and
`--port` (the reactor takes its port as a positional argument), and the
UDP commands take `--host`/`--port` for their own address; the client
also has `--server-host` and `--server-port`. Other options:

- `muxecho-select`: `--upper`, `--max-clients` (default 1024)
- `muxecho-poll`: `--max-clients` (default 1023), `--chunk-size` (default 80)
- `muxecho-epoll`: `--chunk-size` (default 4), `--pipe`, `--interval` (seconds between pipe messages, default 3)
- `muxecho-reactor`: `--max-events` (default 1024), `--idle-timeout` (seconds, default 60)

## Installing

```
pip install .
```

The poll server needs `select.poll`, which is available on POSIX systems.

## Trying it out

Start the UDP server in one terminal and the client in another:

```
muxecho-udp-server
muxecho-udp-client
```

Type a line into the client; the server prints it and sends it back, and
the client prints the reply.

Any of the TCP servers can be tried with a plain TCP client such as
`nc`. Whatever you send comes back, upper-cased where the server does so,
and each server logs new connections and closed clients.

```
muxecho-reactor
```

## Using the classes

Every server is a context manager with an `address` property and can be
run a step at a time, which makes it easy to embed or test:

```python
from muxecho.select_server import SelectEchoServer, upper

with SelectEchoServer("127.0.0.1", 0, upper, 1024) as server:
    host, port = server.address
    ...  # connect clients, then call server.poll_once(timeout) as often as needed
```

- `SelectEchoServer.poll_once`, `PollEchoServer.poll_once` and
  `EdgeEchoServer.poll_once` wait up to `timeout` seconds (forever when
  `None`), serve what is ready and return how many sockets were ready.
  Exceeding `max_clients` raises `RuntimeError`.
- `Reactor.run_once(timeout)` first calls `sweep_idle`, then waits and
  dispatches ready connections. `Reactor.sweep_idle(now)` checks a batch
  of 100 client slots, continuing where the last call stopped, closes
  those idle for at least the idle timeout and returns their slot indices.
  `Reactor.connections` maps slot indices to live client sockets.
- `serve_forever` loops over these steps until an error is raised or the
  process is interrupted.

`UdpEchoServer.handle_one()` echoes one datagram and returns the data and
its sender; `UdpClient.exchange(data)` sends a datagram and returns the
next one received.

In `muxecho.epoll_server`, `produce_letters(fd, interval, count)` writes
runs of five copies of a letter (`aaaaa`, `bbbbb`, ...) to a descriptor,
and `pipe_messages(fd)` yields what arrives on a descriptor until end of
file, then closes it.

`muxecho.wrap` holds socket helpers: `tcp4bind`, `accept`, `read`,
`read_exact`, `write_all` and a buffered `LineReader`, which retry calls
interrupted by signals and cope with short reads and writes.

## Running the tests

```
pip install .[test]
pytest
```