"""Automated reward harvesting and reinvestment for Compound-style lending markets."""

__version__ = "0.1.0"
