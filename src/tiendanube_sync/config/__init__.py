"""Config module - Environment settings and business constants."""

from tiendanube_sync.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
