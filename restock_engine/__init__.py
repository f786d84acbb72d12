"""Stok durumu ve restock karar motoru."""

__version__ = "0.1.0"
