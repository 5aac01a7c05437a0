"""livedraw: real-time result ticker and chat fan-out service."""

__version__ = "0.1.0"
