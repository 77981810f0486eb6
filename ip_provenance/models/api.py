"""
Pydantic models for HTTP request and response bodies.
"""

from decimal import Decimal
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from .asset import DerivativeBounds, LicenseTerms, SensorDataSource


class OriginalRegistrationRequest(BaseModel):
    """Register a sensor dataset as an original IP asset."""
    source: SensorDataSource
    creator_name: str = Field(..., description="Display name of the creator")
    creator_address: Optional[str] = Field(None, description="Defaults to the signing wallet")
    location: Optional[str] = Field(None, description="Overrides the source record's location")
    sensor_data_id: Optional[int] = Field(None, description="Off-chain sensor data record id")
    license_terms: LicenseTerms = Field(default_factory=LicenseTerms)


class DerivativeRegistrationRequest(BaseModel):
    """Register a derivative of an existing IP asset."""
    source: SensorDataSource = Field(..., description="Parent's sensor data record")
    creator_name: str
    creator_address: Optional[str] = None
    parent_ip_id: str
    parent_license_terms_id: str
    sensor_data_id: Optional[int] = None
    royalty_recipient: Optional[str] = None
    royalty_percentage: Optional[float] = None
    location: Optional[str] = None
    bounds: DerivativeBounds = Field(default_factory=DerivativeBounds)


class MintLicenseRequest(BaseModel):
    ip_id: str
    license_terms_id: str
    amount: int = Field(..., description="Number of license tokens, at least 1")
    receiver: Optional[str] = Field(None, description="Defaults to the signing wallet")
    unit_fee: Optional[Decimal] = Field(None, description="Unit minting fee, for the cost display")
    sensor_data_id: Optional[int] = None
    revenue_share: Optional[float] = None


class PayRoyaltyRequest(BaseModel):
    payer_ip_id: str
    receiver_ip_id: str
    amount: str = Field(..., description="Token amount as a decimal string")


class TipRequest(BaseModel):
    receiver_ip_id: str
    amount: str


class ClaimDerivativesRequest(BaseModel):
    child_ip_ids: List[str] = Field(..., description="Derivatives whose royalty vaults owe the ancestor")


class BatchMetadataRequest(BaseModel):
    ip_ids: List[str] = Field(..., description="IP asset ids to read")
    enriched: bool = Field(default=False, description="Resolve off-chain documents as well")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Overall service status")
    version: str = Field(..., description="API version")
    components: Dict[str, Any] = Field(..., description="Component health status")
