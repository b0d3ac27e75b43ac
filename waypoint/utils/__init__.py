"""Utility modules for Waypoint."""
