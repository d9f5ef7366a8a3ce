"""Client-side resource management core for a remote hierarchical file store."""

__version__ = "0.1.0"
