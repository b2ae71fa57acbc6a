"""Core aggregation logic and HTTP API."""
