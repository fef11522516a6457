"""Merchant protocol services."""
