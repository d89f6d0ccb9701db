"""XMLTV guide service backed by Schedules Direct."""

__version__ = "0.1.0"
