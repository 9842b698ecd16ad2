"""Car wash booking and shop API."""

__version__ = "1.0.0"
