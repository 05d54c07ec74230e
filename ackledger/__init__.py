"""Document acknowledgment tracking for policy documents."""

__version__ = "1.0.0"
