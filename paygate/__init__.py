"""Payme merchant API callback service."""

__version__ = "0.1.0"
