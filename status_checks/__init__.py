"""Probe-and-reconcile engine behind a public status page."""

__version__ = "0.1.0"
