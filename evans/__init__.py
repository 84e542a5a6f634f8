"""Configuration, cache, console output, flag parsing and update support for an interactive gRPC client."""

__version__ = "0.1.0"