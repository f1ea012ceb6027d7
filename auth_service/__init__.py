"""Budget Tracker authentication session service."""

__version__ = "1.0.0"
