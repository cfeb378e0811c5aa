"""Game completion tracker with resumable import of completion history."""

__version__ = "0.1.0"
