"""Usage tracking, attention scoring and threshold alerts."""

__version__ = "1.0.0"
