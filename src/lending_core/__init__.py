"""Lending market analytics: collection, processing and aggregation."""

__version__ = "0.1.0"
