"""Gridbase: schema-flexible tables behind interchangeable storage backends."""

__version__ = "0.1.0"
