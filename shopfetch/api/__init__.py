"""Inbound HTTP surface."""

from shopfetch.api.app import create_app


__all__ = ["create_app"]
