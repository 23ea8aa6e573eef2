"""Ordered task sequences for server schedules."""

__version__ = "0.1.0"
