"""Historical league data acquisition and reconciliation pipeline."""

__version__ = "1.0.0"
