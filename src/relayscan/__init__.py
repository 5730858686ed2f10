"""relayscan: relay pair scheduling and bandwidth aggregation for overlay network scanners."""

__version__ = "0.1.0"
