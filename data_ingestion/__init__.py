"""
Data Ingestion Module.

External opportunity payloads decoded into typed variants,
queued on a bounded channel and exposed to the orchestration
loop as candidate assets.
"""

from .candidates import (
    CandidateSource,
    ChannelCandidateSource,
    CompositeCandidateSource,
    StaticCandidateSource,
    to_asset,
)
from .channel import OpportunityChannel
from .opportunities import (
    Opportunity,
    OpportunityKind,
    SwapOpportunity,
    TokenLaunchOpportunity,
    TransferOpportunity,
    decode_opportunity,
)


__all__ = [
    "CandidateSource",
    "ChannelCandidateSource",
    "CompositeCandidateSource",
    "StaticCandidateSource",
    "to_asset",
    "OpportunityChannel",
    "Opportunity",
    "OpportunityKind",
    "SwapOpportunity",
    "TokenLaunchOpportunity",
    "TransferOpportunity",
    "decode_opportunity",
]
