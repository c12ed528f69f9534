"""Tiendanube webhook ingestion and catalog reconciliation service."""

__version__ = "1.0.0"
