"""ghpulse: GitHub activity aggregation and derived analytics."""

__version__ = "0.1.0"
