"""Switchboard: call signaling and offline-aware message delivery."""

__version__ = "0.1.0"
