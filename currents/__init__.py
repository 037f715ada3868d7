"""Branching chat threads kept in sync with a remote row store."""

__version__ = "0.3.0"
