"""Personal task-postponement manager."""

__version__ = "0.1.0"
