"""
Risk Scoring Engine - Bad Actor Registries.

============================================================
PURPOSE
============================================================
Membership lookups for known scam tokens and wallets.

Lookups are synchronous and in-memory so the scorer stays
pure; remote lists are pulled explicitly with refresh().

============================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Set

import aiohttp

from data_sources.base import HttpClientMixin


logger = logging.getLogger(__name__)


SOLANA_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/src/tokens/solana.tokenlist.json"
)


class BadActorRegistry(ABC):
    """Known-bad token mints and wallet addresses."""

    @abstractmethod
    def contains(self, identifier: str) -> bool:
        pass

    async def refresh(self) -> int:
        """Reload from the backing source; returns the entry count."""
        return len(self)

    @abstractmethod
    def __len__(self) -> int:
        pass


class StaticBadActorRegistry(BadActorRegistry):
    """Registry seeded from configuration (SCAM_WALLETS) and extended at runtime."""

    def __init__(self, identifiers: Optional[Iterable[str]] = None):
        self._entries: Set[str] = {i.strip() for i in (identifiers or []) if i and i.strip()}
        self._lock = threading.Lock()

    def contains(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._entries

    def add(self, identifier: str) -> None:
        with self._lock:
            self._entries.add(identifier)
        logger.info(f"Added {identifier} to bad-actor list")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TokenListBadActorRegistry(HttpClientMixin, StaticBadActorRegistry):
    """
    Registry backed by a published token list.

    Tokens tagged "scam" are collected. A failed refresh keeps
    the previous set and is logged, never raised.
    """

    SCAM_TAG = "scam"

    def __init__(
        self,
        url: str = SOLANA_TOKEN_LIST_URL,
        seed: Optional[Iterable[str]] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        StaticBadActorRegistry.__init__(self, seed)
        self._init_http(timeout=timeout, session=session)
        self._url = url
        self._seed = set(self._entries)
        self._loaded = False

    @property
    def source_label(self) -> str:
        return "token_list"

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def refresh(self) -> int:
        try:
            payload = await self._make_request("GET", self._url)
            flagged = self.parse_scam_tokens(payload)
        except Exception as e:
            logger.error(f"Error loading scam list from {self._url}: {e}")
            return len(self)

        with self._lock:
            self._entries = set(self._seed) | flagged
            count = len(self._entries)
        self._loaded = True
        logger.info(f"Scam list loaded: {len(flagged)} flagged tokens")
        return count

    @classmethod
    def parse_scam_tokens(cls, payload: Any) -> Set[str]:
        tokens = payload.get("tokens") if isinstance(payload, dict) else None
        if not isinstance(tokens, list):
            raise ValueError("Token list payload has no 'tokens' array")
        return {
            token["address"]
            for token in tokens
            if isinstance(token, dict)
            and token.get("address")
            and cls.SCAM_TAG in (token.get("tags") or [])
        }
