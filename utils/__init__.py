"""Utility helpers packaged for convenient imports."""

from .logging import setup_logging  # noqa: F401

__all__ = [
    "setup_logging",
]
