"""Turns meeting notes into reviewable task suggestions."""

__version__ = "1.0.0"
