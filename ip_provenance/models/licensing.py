"""
Pydantic models for license minting and royalty flows.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class RoyaltyDirection(str, Enum):
    """Direction of a royalty payment."""
    DIRECT_SUPPORT = "direct_support"
    DERIVATIVE_TO_PARENT = "derivative_to_parent"


class MintResult(BaseModel):
    """Outcome of a license token mint."""
    ip_id: str = Field(..., description="Licensor IP asset id")
    license_terms_id: str = Field(..., description="Terms the tokens were minted under")
    amount: int = Field(..., ge=1)
    receiver: str = Field(..., description="Address the tokens were minted to")
    tx_hash: str
    license_token_ids: List[str] = Field(default_factory=list)
    explorer_tx_url: Optional[str] = None
    total_fee: Optional[Decimal] = Field(None, description="amount x unit fee, display only")
    warnings: List[str] = Field(default_factory=list)


class RoyaltyFlow(BaseModel):
    """A value transfer into a receiver asset's accrued-revenue balance."""
    payer_ip_id: str
    receiver_ip_id: str
    amount: Decimal = Field(..., gt=0)
    amount_wei: int = Field(..., gt=0)
    currency: str
    tx_hash: str
    direction: RoyaltyDirection
    explorer_tx_url: Optional[str] = None
    paid_at: datetime = Field(default_factory=datetime.utcnow)
    warnings: List[str] = Field(default_factory=list)

    class Config:
        use_enum_values = True


class ClaimableRevenue(BaseModel):
    ip_id: str
    claimer: str
    currency: str
    amount_wei: int = Field(..., ge=0)
    amount: str = Field(..., description="Formatted token amount")


class ClaimResult(BaseModel):
    ip_id: str
    claimer: str
    tx_hashes: List[str] = Field(default_factory=list)
    claimed_tokens: List[str] = Field(default_factory=list)
    child_ip_ids: List[str] = Field(default_factory=list)
    explorer_tx_urls: List[str] = Field(default_factory=list)
