"""Command line interface."""

from shopfetch.cli.main import cli


__all__ = ["cli"]
