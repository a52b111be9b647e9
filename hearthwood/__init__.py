"""Hearthwood — a persistent world of autonomous characters, one day at a time."""

__version__ = "0.1.0"
