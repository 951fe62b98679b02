"""Repository activity analytics and executive narrative engine."""

__version__ = "0.1.0"
