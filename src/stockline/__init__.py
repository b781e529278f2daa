"""Stockline: scan-driven inventory movements."""

__version__ = "0.1.0"
