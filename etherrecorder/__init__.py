"""Record data received from a TCP server as hex logs and accept framed runtime commands."""

__version__ = "0.1.0"