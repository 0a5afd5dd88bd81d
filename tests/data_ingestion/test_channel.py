"""
Tests for the opportunity channel and candidate sources.
"""

import pytest

from data_ingestion.candidates import (
    CandidateSource,
    ChannelCandidateSource,
    CompositeCandidateSource,
    StaticCandidateSource,
    to_asset,
)
from data_ingestion.channel import OpportunityChannel
from data_ingestion.opportunities import decode_opportunity
from tests.factories import BONK_MINT, SOL_MINT, make_asset


# ============================================================
# FIXTURES
# ============================================================

def _launch(mint=BONK_MINT, symbol="BONK", **extra):
    payload = {"kind": "token_launch", "mint": mint, "symbol": symbol}
    payload.update(extra)
    return payload


def _swap(output_mint=BONK_MINT, **extra):
    payload = {"kind": "swap", "inputMint": SOL_MINT, "outputMint": output_mint, "amount": 2.0}
    payload.update(extra)
    return payload


# ============================================================
# CHANNEL
# ============================================================

class TestOpportunityChannel:
    """Tests for OpportunityChannel."""

    def test_submit_and_drain(self):
        """Test that accepted payloads drain in order."""
        channel = OpportunityChannel(maxsize=10)

        assert channel.submit(_launch())
        assert channel.submit(_swap(SOL_MINT))

        drained = channel.drain()
        assert [o.kind for o in drained] == ["token_launch", "swap"]
        assert len(channel) == 0

    def test_full_channel_drops_newest(self):
        """Test that publishing to a full channel drops the new item."""
        channel = OpportunityChannel(maxsize=1)

        assert channel.submit(_launch())
        assert not channel.submit(_launch(SOL_MINT, "SOL"))

        assert channel.stats()["dropped"] == 1
        assert channel.drain()[0].mint == BONK_MINT

    def test_submit_rejects_bad_payload(self):
        """Test that undecodable payloads are counted and not queued."""
        channel = OpportunityChannel()

        assert not channel.submit({"kind": "unknown"})

        assert channel.stats() == {"queued": 0, "accepted": 0, "dropped": 0, "rejected": 1}

    def test_drain_respects_max_items(self):
        """Test that drain stops at max_items."""
        channel = OpportunityChannel()
        for _ in range(3):
            channel.submit(_swap())

        assert len(channel.drain(max_items=2)) == 2
        assert len(channel) == 1

    @pytest.mark.asyncio
    async def test_get_times_out(self):
        """Test that get() returns None when nothing arrives."""
        assert await OpportunityChannel().get(timeout=0.01) is None

    def test_rejects_zero_size(self):
        """Test that a channel must hold at least one item."""
        with pytest.raises(ValueError):
            OpportunityChannel(maxsize=0)


# ============================================================
# CANDIDATES
# ============================================================

class TestCandidateSources:
    """Tests for candidate sources."""

    def test_launch_maps_creator_to_issuer(self):
        """Test that a token launch carries its metadata onto the asset."""
        asset = to_asset(decode_opportunity(_launch(creator="Creator1111", holders=120, supply=1e9)))

        assert asset.identifier == BONK_MINT
        assert asset.issuer == "Creator1111"
        assert asset.holder_count == 120
        assert asset.name == "BONK"

    def test_swap_without_symbol(self):
        """Test that a swap without a symbol uses a mint prefix."""
        asset = to_asset(decode_opportunity(_swap()))

        assert asset.symbol == BONK_MINT[:8]

    def test_transfer_not_tradable(self):
        """Test that transfers yield no candidate."""
        transfer = decode_opportunity({"kind": "transfer", "destination": "D", "lamports": 1})

        assert to_asset(transfer) is None

    @pytest.mark.asyncio
    async def test_channel_source_dedupes(self):
        """Test that repeated assets in one batch collapse to the first."""
        channel = OpportunityChannel()
        channel.submit(_launch(symbol="FIRST"))
        channel.submit(_swap(output_symbol="SECOND"))
        channel.submit({"kind": "transfer", "destination": "D", "lamports": 1})
        channel.submit(_swap(SOL_MINT, outputSymbol="SOL"))

        assets = await ChannelCandidateSource(channel).get_candidates()

        assert [(a.identifier, a.symbol) for a in assets] == [(BONK_MINT, "FIRST"), (SOL_MINT, "SOL")]
        assert len(channel) == 0

    @pytest.mark.asyncio
    async def test_composite_first_wins(self):
        """Test that the composite source keeps the first occurrence."""
        watch = StaticCandidateSource([make_asset(BONK_MINT, symbol="WATCH")])

        class Extra(CandidateSource):
            async def get_candidates(self):
                return [make_asset(BONK_MINT, symbol="DUP"), make_asset(SOL_MINT, symbol="SOL")]

        assets = await CompositeCandidateSource([watch, Extra()]).get_candidates()

        assert [a.symbol for a in assets] == ["WATCH", "SOL"]
