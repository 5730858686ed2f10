"""Aggregation module for relay bandwidths.

- Folds completed measurements into the stats table
- Computes capped, redistributed bandwidths and publishes versioned files
- Forbidden: probing, pair selection
"""
