"""Cycling telemetry metrics and admin analytics."""

__version__ = "0.1.0"
