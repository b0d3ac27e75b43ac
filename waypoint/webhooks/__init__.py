"""Inbound HTTP endpoint for confirmation decisions."""

from waypoint.webhooks.handlers import Decision, parse_decision, validate_generic_secret
from waypoint.webhooks.server import DecisionServer

__all__ = ["Decision", "DecisionServer", "parse_decision", "validate_generic_secret"]
