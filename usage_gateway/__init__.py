"""Keyset usage gateway: admin API aggregation service."""

__version__ = "1.0.0"
