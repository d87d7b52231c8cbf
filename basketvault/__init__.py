"""Basket vault accounting and rebalancing engine."""

__version__ = "0.1.0"
