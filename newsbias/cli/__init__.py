"""Command-line interface for newsbias."""

from .main import cli, main

__all__ = ["cli", "main"]
