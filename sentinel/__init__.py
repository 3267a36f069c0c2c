"""sentinel - local-first periodic job runner."""

__version__ = "0.1.0"
