"""Long-term interaction memory backed by a Mem0-compatible API."""

from __future__ import annotations

from typing import Optional

from ..config import MemoryConfig
from ..errors import ExternalServiceDegradedError
from ..logging import get_logger
from .http import Transport, bearer, post_json

logger = get_logger("integrations.memory")


class MemoryStore:
    """Appends free-text memories for a user. Failures are logged, never raised."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = "https://api.mem0.ai/v1",
        timeout: float = 15.0,
        transport: Transport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport or post_json

    @classmethod
    def from_config(cls, config: MemoryConfig, *, transport: Transport | None = None) -> "MemoryStore":
        return cls(config.api_key, base_url=config.base_url, timeout=config.request_timeout, transport=transport)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def append(self, user_id: str, content: str) -> bool:
        """Store ``content`` for ``user_id``; returns whether it was stored."""
        if not self.enabled:
            logger.debug("Memory API key not configured, skipping memory storage")
            return False
        payload = {"messages": [{"role": "user", "content": content}], "user_id": user_id}
        try:
            self._transport(f"{self.base_url}/memories/", payload, bearer(self.api_key), self.timeout)
        except ExternalServiceDegradedError as exc:
            logger.warning("Memory storage failed: %s", exc)
            return False
        logger.info("Stored interaction memory for %s", user_id)
        return True
