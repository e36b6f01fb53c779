"""Persistence of raw snapshots, market timeseries and asset snapshots."""
