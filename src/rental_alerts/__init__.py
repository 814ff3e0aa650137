"""Match newly listed rentals against saved searches and notify users."""

__version__ = "0.1.0"
