[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "muxecho"
version = "0.1.0"
description = "TCP echo servers built on select, poll, a draining selector loop and a callback reactor, plus a UDP echo pair"
requires-python = ">=3.10"
dependencies = []
keywords = ["echo", "server", "select", "poll", "selectors", "reactor", "udp", "tcp", "sockets"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
muxecho-udp-server = "muxecho.udp:server_main"
muxecho-udp-client = "muxecho.udp:client_main"
muxecho-select = "muxecho.select_server:main"
muxecho-poll = "muxecho.poll_server:main"
muxecho-epoll = "muxecho.epoll_server:main"
muxecho-reactor = "muxecho.reactor:main"

[tool.hatch.build.targets.wheel]
packages = ["muxecho"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
