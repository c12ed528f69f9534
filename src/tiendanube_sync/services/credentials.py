"""Credential lookup for Tiendanube stores.

Tokens are provisioned by the OAuth install flow (outside this service) into a
JSON file keyed by store id:

    {"123456": {"access_token": "...", "store_name": "Mi Tienda"}}

A single-store deployment can instead set TIENDANUBE_ACCESS_TOKEN.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from tiendanube_sync.config.settings import settings
from tiendanube_sync.core.exceptions import CredentialsNotFound
from tiendanube_sync.core.logger import setup_logger

logger = setup_logger(__name__)

# Seconds a loaded token file stays cached
TOKEN_CACHE_TTL = 60


@dataclass
class StoreCredentials:
    """API token and cached metadata for one store."""

    store_id: int
    access_token: str
    user_agent: str = field(default_factory=lambda: settings.tiendanube_user_agent)
    store_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class CredentialProvider(ABC):
    """Resolves a store id to its credentials."""

    @abstractmethod
    async def get(self, store_id: int) -> StoreCredentials:
        """
        Get credentials for a store.

        Raises:
            CredentialsNotFound: No token stored for the store
        """


class TokenFileCredentialProvider(CredentialProvider):
    """Reads tokens from a JSON file, falling back to the settings token."""

    def __init__(
        self,
        tokens_file: Optional[str] = None,
        fallback_token: Optional[str] = None,
        fallback_store_id: Optional[int] = None,
    ):
        self.tokens_file = Path(tokens_file or settings.tokens_file)
        self.fallback_token = fallback_token if fallback_token is not None else settings.tiendanube_access_token
        self.fallback_store_id = (
            fallback_store_id if fallback_store_id is not None else settings.tiendanube_user_id
        )
        self._cache: Optional[Dict[str, Any]] = None
        self._last_load_time = 0.0

    def _load_tokens(self) -> Dict[str, Any]:
        """Load tokens from cache if fresh, otherwise from file."""
        if self._cache is not None and time.time() - self._last_load_time < TOKEN_CACHE_TTL:
            return self._cache

        tokens: Dict[str, Any] = {}
        try:
            if self.tokens_file.exists():
                with open(self.tokens_file, "r") as f:
                    tokens = json.load(f)
                logger.debug("Loaded tokens from file")
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load tokens from {self.tokens_file}: {e}")

        self._cache = tokens if isinstance(tokens, dict) else {}
        self._last_load_time = time.time()
        return self._cache

    async def get(self, store_id: int) -> StoreCredentials:
        entry = self._load_tokens().get(str(store_id))
        if isinstance(entry, dict) and entry.get("access_token"):
            metadata = {k: v for k, v in entry.items() if k != "access_token"}
            return StoreCredentials(
                store_id=store_id,
                access_token=entry["access_token"],
                user_agent=entry.get("user_agent") or settings.tiendanube_user_agent,
                store_name=entry.get("store_name"),
                metadata=metadata,
            )

        if self.fallback_token and self.fallback_store_id in (None, store_id):
            return StoreCredentials(store_id=store_id, access_token=self.fallback_token)

        logger.warning(f"No credentials found for store {store_id}")
        raise CredentialsNotFound(store_id)
