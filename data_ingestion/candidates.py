"""
Data Ingestion - Candidate Sources.

Where the orchestration loop gets the assets to evaluate
each cycle.

- StaticCandidateSource: fixed watch list
- ChannelCandidateSource: assets derived from queued
  opportunities (token launches and swap outputs)
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from data_sources.models import AssetDescriptor

from .channel import OpportunityChannel
from .opportunities import (
    Opportunity,
    SwapOpportunity,
    TokenLaunchOpportunity,
)


logger = logging.getLogger(__name__)


class CandidateSource(ABC):
    """Supplies candidate assets for one cycle."""

    @abstractmethod
    async def get_candidates(self) -> List[AssetDescriptor]:
        pass


class StaticCandidateSource(CandidateSource):

    def __init__(self, assets: Iterable[AssetDescriptor]):
        self._assets = list(assets)

    async def get_candidates(self) -> List[AssetDescriptor]:
        return list(self._assets)


def to_asset(opportunity: Opportunity) -> Optional[AssetDescriptor]:
    """Candidate asset for an opportunity, or None if it is not tradable."""
    if isinstance(opportunity, TokenLaunchOpportunity):
        return AssetDescriptor(
            identifier=opportunity.mint,
            symbol=opportunity.symbol,
            name=opportunity.name or opportunity.symbol,
            decimals=opportunity.decimals,
            total_supply=opportunity.supply,
            holder_count=opportunity.holders,
            social_score=opportunity.social_score,
            issuer=opportunity.creator,
            liquidity_usd=opportunity.liquidity_usd,
        )
    if isinstance(opportunity, SwapOpportunity):
        symbol = opportunity.output_symbol or opportunity.output_mint[:8]
        return AssetDescriptor(
            identifier=opportunity.output_mint,
            symbol=symbol,
            name=symbol,
        )
    return None


class ChannelCandidateSource(CandidateSource):
    """
    Drains the opportunity channel once per call.

    Duplicates within a batch collapse to the first occurrence;
    transfers are discarded.
    """

    def __init__(self, channel: OpportunityChannel, max_batch: int = 50):
        self._channel = channel
        self._max_batch = max_batch

    async def get_candidates(self) -> List[AssetDescriptor]:
        opportunities = self._channel.drain(self._max_batch)
        assets: Dict[str, AssetDescriptor] = {}
        skipped = 0
        for opportunity in opportunities:
            asset = to_asset(opportunity)
            if asset is None:
                skipped += 1
                continue
            assets.setdefault(asset.identifier, asset)

        if opportunities:
            logger.debug(
                f"Channel candidates: {len(assets)} from {len(opportunities)} "
                f"opportunities ({skipped} not tradable)"
            )
        return list(assets.values())


class CompositeCandidateSource(CandidateSource):
    """Concatenates several sources; first occurrence of an asset wins."""

    def __init__(self, sources: Iterable[CandidateSource]):
        self._sources = list(sources)

    async def get_candidates(self) -> List[AssetDescriptor]:
        assets: Dict[str, AssetDescriptor] = {}
        for source in self._sources:
            for asset in await source.get_candidates():
                assets.setdefault(asset.identifier, asset)
        return list(assets.values())
