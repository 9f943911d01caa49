"""Watchshare: share watchlists and track media over a small REST API."""

__version__ = "1.0.0"
