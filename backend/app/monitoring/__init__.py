"""Metric registry and metric definitions for the chat relay and API."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
