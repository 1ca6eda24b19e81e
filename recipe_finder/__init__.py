"""Recipe search and similarity engine."""

__version__ = "1.0.0"
