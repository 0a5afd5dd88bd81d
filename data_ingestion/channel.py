"""
Data Ingestion - Opportunity Channel.

Bounded queue between the ingestion boundary (websocket
listeners, webhooks) and the orchestration loop, which polls
it once per cycle. When full, the newest opportunity is
dropped with a warning; publishers never block.
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from core.exceptions import OpportunityDecodeError

from .opportunities import Opportunity, decode_opportunity


logger = logging.getLogger(__name__)


class OpportunityChannel:
    """
    Usage:
        channel = OpportunityChannel(maxsize=1000)
        channel.submit(raw_payload)        # boundary
        batch = channel.drain(max_items=50)  # loop
    """

    def __init__(self, maxsize: int = 1000):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._accepted = 0
        self._dropped = 0
        self._rejected = 0

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def publish(self, opportunity: Opportunity) -> bool:
        """Enqueue a decoded opportunity. False if the channel is full."""
        try:
            self._queue.put_nowait(opportunity)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                f"Opportunity channel full ({self._queue.maxsize}), dropping "
                f"{opportunity.kind} {opportunity.opportunity_id}"
            )
            return False
        self._accepted += 1
        return True

    def submit(self, payload: Union[Mapping[str, Any], str, bytes]) -> bool:
        """Decode and enqueue a raw payload. Undecodable payloads are logged and rejected."""
        try:
            opportunity = decode_opportunity(payload)
        except OpportunityDecodeError as e:
            self._rejected += 1
            logger.warning(f"Rejected opportunity payload: {e.message}")
            return False
        return self.publish(opportunity)

    def drain(self, max_items: Optional[int] = None) -> List[Opportunity]:
        """Take up to max_items queued opportunities without waiting."""
        items: List[Opportunity] = []
        while max_items is None or len(items) < max_items:
            try:
                items.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        return items

    async def get(self, timeout: Optional[float] = None) -> Optional[Opportunity]:
        """Wait for the next opportunity; None on timeout."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def stats(self) -> Dict[str, int]:
        return {
            "queued": self._queue.qsize(),
            "accepted": self._accepted,
            "dropped": self._dropped,
            "rejected": self._rejected,
        }
