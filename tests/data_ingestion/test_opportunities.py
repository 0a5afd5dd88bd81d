"""
Tests for opportunity decoding.

Payloads arrive as dicts or JSON text, in snake_case or
camelCase. Anything unrecognised is an OpportunityDecodeError.
"""

import json

import pytest

from core.exceptions import OpportunityDecodeError
from data_ingestion.opportunities import (
    SwapOpportunity,
    TokenLaunchOpportunity,
    TransferOpportunity,
    decode_opportunity,
)
from tests.factories import BONK_MINT, SOL_MINT


class TestDecodeOpportunity:
    """Tests for decode_opportunity."""

    def test_token_launch_camel_case(self):
        """Test that camelCase fields decode into a token launch."""
        opportunity = decode_opportunity({
            "kind": "token_launch",
            "mint": BONK_MINT,
            "symbol": "BONK",
            "socialScore": 0.7,
            "liquidityUsd": 25_000,
            "creator": "Creator1111",
        })

        assert isinstance(opportunity, TokenLaunchOpportunity)
        assert opportunity.social_score == 0.7
        assert opportunity.liquidity_usd == 25_000
        assert opportunity.opportunity_id

    def test_swap_snake_case_json(self):
        """Test that JSON text with snake_case fields decodes into a swap."""
        payload = json.dumps({
            "kind": "swap",
            "input_mint": SOL_MINT,
            "output_mint": BONK_MINT,
            "amount": 1.5,
            "output_symbol": "BONK",
        })

        opportunity = decode_opportunity(payload)

        assert isinstance(opportunity, SwapOpportunity)
        assert opportunity.output_mint == BONK_MINT
        assert opportunity.slippage_bps == 50

    def test_transfer(self):
        """Test that transfers decode to their own variant."""
        opportunity = decode_opportunity({"kind": "transfer", "destination": "Dest111", "lamports": 5000})

        assert isinstance(opportunity, TransferOpportunity)

    def test_extra_fields_ignored(self):
        """Test that unknown fields do not fail decoding."""
        opportunity = decode_opportunity({
            "kind": "transfer", "destination": "Dest111", "lamports": 1, "memo": "hi",
        })

        assert opportunity.lamports == 1

    @pytest.mark.parametrize("payload", [
        {"kind": "airdrop", "mint": BONK_MINT},
        {"mint": BONK_MINT, "symbol": "BONK"},
        {"kind": "token_launch", "symbol": "BONK"},
        {"kind": "swap", "inputMint": SOL_MINT, "outputMint": BONK_MINT, "amount": 0},
        {"kind": "token_launch", "mint": BONK_MINT, "symbol": "BONK", "decimals": 40},
        "{not json",
        b"[]",
    ])
    def test_invalid_payloads_rejected(self, payload):
        """Test that unknown kinds, missing fields, bad values and bad JSON are rejected."""
        with pytest.raises(OpportunityDecodeError):
            decode_opportunity(payload)

    def test_error_lists_field_errors(self):
        """Test that the decode error carries the validation details."""
        with pytest.raises(OpportunityDecodeError) as exc_info:
            decode_opportunity({"kind": "token_launch"})

        assert "mint" in exc_info.value.context["errors"]
