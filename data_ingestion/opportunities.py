"""
Data Ingestion - Opportunity Messages.

============================================================
PURPOSE
============================================================
Typed variants for external opportunity payloads, decoded
and validated at the boundary. Nothing past this module sees
a raw dict.

KINDS:
- token_launch: newly detected token with its metadata
- swap:         routed swap into an output token
- transfer:     plain transfer (never a trade candidate)

Field names accept snake_case or camelCase.

============================================================
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from core.exceptions import OpportunityDecodeError


class OpportunityKind(str, Enum):
    TOKEN_LAUNCH = "token_launch"
    SWAP = "swap"
    TRANSFER = "transfer"


class _OpportunityBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    opportunity_id: str = Field(default_factory=lambda: str(uuid4()))
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TokenLaunchOpportunity(_OpportunityBase):
    """Newly detected token."""
    kind: Literal["token_launch"] = "token_launch"
    mint: str = Field(min_length=1)
    symbol: str = Field(min_length=1)
    name: str = ""
    decimals: int = Field(default=0, ge=0, le=18)
    supply: float = Field(default=0.0, ge=0)
    holders: int = Field(default=0, ge=0)
    social_score: float = Field(default=0.0, ge=0)
    liquidity_usd: Optional[float] = Field(default=None, ge=0)
    creator: Optional[str] = None


class SwapOpportunity(_OpportunityBase):
    """Swap route; the output token is the candidate."""
    kind: Literal["swap"] = "swap"
    input_mint: str = Field(min_length=1)
    output_mint: str = Field(min_length=1)
    amount: float = Field(gt=0)
    slippage_bps: int = Field(default=50, ge=0, le=10_000)
    output_symbol: Optional[str] = None


class TransferOpportunity(_OpportunityBase):
    kind: Literal["transfer"] = "transfer"
    destination: str = Field(min_length=1)
    lamports: int = Field(gt=0)


Opportunity = Annotated[
    Union[TokenLaunchOpportunity, SwapOpportunity, TransferOpportunity],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter = TypeAdapter(Opportunity)


def decode_opportunity(payload: Union[Mapping[str, Any], str, bytes]) -> Opportunity:
    """
    Decode a raw payload into its typed variant.

    Raises:
        OpportunityDecodeError: unknown kind, missing or invalid fields,
            malformed JSON
    """
    try:
        if isinstance(payload, (str, bytes)):
            return _ADAPTER.validate_json(payload)
        return _ADAPTER.validate_python(dict(payload))
    except ValidationError as e:
        raise OpportunityDecodeError(
            f"Invalid opportunity payload: {e.error_count()} error(s)",
            context={"errors": json.dumps(e.errors(include_url=False), default=str)},
            cause=e,
        ) from e
    except (TypeError, ValueError) as e:
        raise OpportunityDecodeError(f"Invalid opportunity payload: {e}", cause=e) from e
