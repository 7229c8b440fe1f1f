"""Hybrid semantic and structured search over a movie catalog."""

__version__ = "0.1.0"
