"""Relay YouTube video streams over a single HTTP endpoint."""

__version__ = "0.1.0"
