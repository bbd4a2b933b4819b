"""feedwatch: check subscribed feeds and pages, notify each destination once per item."""

__version__ = "0.1.0"

__all__ = ["__version__"]
