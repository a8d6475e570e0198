"""One-time file relay service."""

__version__ = "0.1.0"
