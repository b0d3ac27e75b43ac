"""Waypoint - durable, resumable plan execution."""

__version__ = "0.1.0"
