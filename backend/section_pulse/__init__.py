"""Section Pulse: per-society collection section tracking for multi-tenant dairy schemas."""

__version__ = "0.1.0"
__author__ = "Section Pulse Team"

__all__ = ["__version__", "__author__"]
