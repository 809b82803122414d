"""Conference session and speaker extraction."""

__version__ = "0.1.0"
