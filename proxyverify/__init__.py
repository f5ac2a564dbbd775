"""Cluster-wide proxy validation for Windows nodes."""

__version__ = "0.1.0"
