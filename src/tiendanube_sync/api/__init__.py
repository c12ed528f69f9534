"""Tiendanube API client package."""

from .client import TiendanubeAPIClient, UpstreamPage, create_client

__all__ = ["TiendanubeAPIClient", "UpstreamPage", "create_client"]
