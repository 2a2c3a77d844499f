"""Email sync, classification and metric forecasting."""

__version__ = "0.1.0"

__all__ = ["__version__"]
