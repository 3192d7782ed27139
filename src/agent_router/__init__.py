"""Cost-aware task router for a pool of external AI agents."""

__version__ = "0.1.0"
