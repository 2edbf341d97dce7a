"""Planboard -- project, task and calendar planning API."""

__version__ = "1.0.0"
