"""Static site generator for a personal technical blog."""

__version__ = "0.1.0"
