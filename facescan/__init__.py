"""Live face guidance, auto-capture and descriptor verification."""

__version__ = "0.1.0"
