"""Scheduled Conclave participation ticks with operator notifications."""

__version__ = "0.1.0"
