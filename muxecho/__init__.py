"""TCP echo servers built on select, poll, a draining selector loop and a callback reactor, with a UDP echo pair."""

__version__ = "0.1.0"
__all__ = ["__version__"]