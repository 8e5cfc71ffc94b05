"""Resilience guard for calls to unreliable async operations."""

__version__ = "0.1.0"
