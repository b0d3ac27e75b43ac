"""Core modules for Waypoint."""
