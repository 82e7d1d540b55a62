"""Merchant lookup server for the card autofill plugin."""

__version__ = "0.2.0"
