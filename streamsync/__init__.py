"""Relay Redis stream entries from a local instance to a remote one, with health and metrics endpoints."""

__version__ = "0.1.0"