"""Beam collaborative gallery API."""

__version__ = "0.1.0"
