"""
Pydantic models for IP asset registration and provenance data structures.
"""

from decimal import Decimal
from enum import Enum, IntEnum
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, validator

from ip_provenance import config


class DataSourcePlatform(str, Enum):
    """Platforms sensor records are extracted from."""
    GMAIL = "gmail"
    BLYNK = "blynk"


class RegistrationKind(str, Enum):
    ORIGINAL = "original"
    DERIVATIVE = "derivative"


class RegistrationStep(IntEnum):
    """Ordered registration stages. The index only ever moves forward."""
    IDLE = 0
    KNOWLEDGE_UPLOADED = 1
    METADATA_ASSEMBLED = 2
    METADATA_UPLOADED = 3
    LEDGER_REGISTERED = 4
    INDEX_PERSISTED = 5
    DONE = 6


class SensorDataSource(BaseModel):
    """A sensor dataset record as extracted from the mail/IoT adapters."""
    id: Optional[int] = Field(None, description="Off-chain sensor data record id")
    type: str = Field(..., description="Sensor type code, e.g. moisture")
    title: str = Field(..., description="Dataset title")
    data: str = Field(default="", description="Raw sensor payload, preserved verbatim")
    timestamp: str = Field(..., description="ISO 8601 collection timestamp")
    sensor_health: str = Field(..., description="Sensor health status, e.g. 96%")
    location: Optional[str] = Field(None, description="Collection location")
    image_hash: Optional[str] = Field(None, description="IPFS CID of the dataset image")
    source: Optional[DataSourcePlatform] = Field(None, description="Extraction platform")
    creator_address: Optional[str] = Field(None, description="Address of the record's original creator")
    ip_asset_id: Optional[str] = Field(None, description="IP asset id once registered")
    transaction_hash: Optional[str] = Field(None)
    story_explorer_url: Optional[str] = Field(None)
    metadata_url: Optional[str] = Field(None)
    revenue_share: Optional[float] = Field(None, ge=0, le=100)
    minting_fee: Optional[Decimal] = Field(None, ge=0)

    class Config:
        use_enum_values = True


class SigningContext(BaseModel):
    """Explicit signing context for ledger calls. Replaces any ambient wallet state."""
    address: Optional[str] = Field(None, description="Connected wallet address")
    chain_id: str = Field(default="aeneid", description="Target network")

    @property
    def connected(self) -> bool:
        return bool(self.address and self.address.strip())


class LicenseTerms(BaseModel):
    """Commercial-remix license terms published at original registration."""
    revenue_share: float = Field(default=config.DEFAULT_REVENUE_SHARE, ge=0, le=100,
                                 description="Commercial revenue share percentage")
    minting_fee: Decimal = Field(default=Decimal(config.DEFAULT_MINTING_FEE), ge=0,
                                 description="Minting fee per license token, in currency units")
    currency: str = Field(default=config.WIP_TOKEN_ADDRESS, description="Royalty currency token")


class DerivativeBounds(BaseModel):
    """Caller-supplied upper bounds accepted at derivation time."""
    max_minting_fee: Decimal = Field(default=Decimal(0), ge=0, description="0 means no limit")
    max_revenue_share: float = Field(default=100, ge=0, le=100)
    max_rts: int = Field(default=config.DEFAULT_MAX_RTS, ge=0, description="Max royalty tokens")


class RoyaltyShare(BaseModel):
    recipient: str
    percentage: float = Field(..., gt=0, le=100)


class Locator(BaseModel):
    """Opaque content identifier returned by the storage gateway. Readers resolve it to a URL."""
    cid: str

    @property
    def uri(self) -> str:
        return f"ipfs://{self.cid}"


class ContentReference(BaseModel):
    """A resolvable document together with the digest of its bytes."""
    url: str
    hash: str


class ParentLineage(BaseModel):
    """Lineage fields a derivative must carry."""
    parent_ip_id: str = Field(..., description="Full parent IP asset id")
    parent_license_terms_id: str = Field(..., description="Terms id the parent published")
    parent_creator_address: Optional[str] = Field(None)

    @validator("parent_ip_id", "parent_license_terms_id")
    def validate_present(cls, v):
        if not v or not str(v).strip():
            raise ValueError("Parent lineage fields must not be empty")
        return v


class SynthesisContext(BaseModel):
    """Everything besides the source record needed to build asset metadata."""
    kind: RegistrationKind = RegistrationKind.ORIGINAL
    location: str
    creator_name: str
    creator_address: str
    knowledge: Optional[ContentReference] = None
    image: Optional[ContentReference] = None
    lineage: Optional[ParentLineage] = None
    registration_date: Optional[str] = None

    class Config:
        use_enum_values = True


class RegistrationResult(BaseModel):
    """Outcome of an original or derivative registration."""
    success: bool
    kind: Optional[RegistrationKind] = None
    step: RegistrationStep = RegistrationStep.IDLE
    ip_id: Optional[str] = None
    tx_hash: Optional[str] = None
    token_id: Optional[str] = None
    license_terms_ids: List[str] = Field(default_factory=list)
    explorer_url: Optional[str] = None
    metadata_url: Optional[str] = None
    nft_metadata_url: Optional[str] = None
    parent_ip_id: Optional[str] = None
    knowledge_url: Optional[str] = None
    knowledge_hash: Optional[str] = None
    image_url: Optional[str] = None
    image_hash: Optional[str] = None
    ip_metadata: Optional[Dict[str, Any]] = None
    nft_metadata: Optional[Dict[str, Any]] = None
    persisted: bool = False
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None


class CoreMetadata(BaseModel):
    """On-chain core metadata of an IP asset."""
    nft_token_uri: str = ""
    nft_metadata_hash: str = "0x" + "00" * 32
    metadata_uri: str = ""
    metadata_hash: str = "0x" + "00" * 32
    registration_date: int = 0
    owner: str = config.ZERO_ADDRESS


class EnrichedMetadata(BaseModel):
    """Core metadata plus whatever off-chain documents could be resolved."""
    ip_id: str
    core_metadata: CoreMetadata = Field(default_factory=CoreMetadata)
    ip_metadata_content: Optional[Dict[str, Any]] = None
    nft_metadata_content: Optional[Dict[str, Any]] = None
    json_string: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    token_document: Optional[Dict[str, Any]] = None
    is_supported: bool = False
    error: Optional[str] = None


class IntegrityReport(BaseModel):
    """Comparison of on-chain content hashes with the resolved documents."""
    ip_id: str
    metadata_hash_matches: Optional[bool] = None
    nft_metadata_hash_matches: Optional[bool] = None
    computed_metadata_hash: Optional[str] = None
    computed_nft_metadata_hash: Optional[str] = None
    errors: List[str] = Field(default_factory=list)

    @property
    def verified(self) -> bool:
        return bool(self.metadata_hash_matches and self.nft_metadata_hash_matches)


class ExportFormat(str, Enum):
    JSON = "json"
    MARKDOWN = "markdown"
    TEXT = "text"


class ResolvedFile(BaseModel):
    """A file an asset references, with its fetched content when it resolved."""
    url: str
    cid: Optional[str] = None
    hash: str = ""
    media_type: Optional[str] = None
    raw: Optional[str] = None
    parsed: Optional[Any] = None


class CompleteIPData(BaseModel):
    """Everything known about one IP asset, gathered for a downloadable export."""
    ip_id: str
    title: str = "Untitled IP Asset"
    description: str = ""
    registration_date: str = "Not Available"
    registered_timestamp: Optional[str] = None
    owner: str = config.ZERO_ADDRESS
    location: Optional[str] = None
    sensor_type: Optional[str] = None
    sensor_health: Optional[str] = None
    data_timestamp: Optional[str] = None
    creators: List[Dict[str, Any]] = Field(default_factory=list)
    image: Optional[ResolvedFile] = None
    media: Optional[ResolvedFile] = None
    metadata_uri: Optional[str] = None
    nft_token_uri: Optional[str] = None
    metadata_hash: Optional[str] = None
    nft_metadata_hash: Optional[str] = None
    ip_metadata: Optional[ResolvedFile] = None
    nft_metadata: Optional[ResolvedFile] = None
    knowledge_file: Optional[ResolvedFile] = None
    license_info: Optional[Dict[str, Any]] = None
    dataset_context: Optional[Dict[str, Any]] = None
    core_metadata: CoreMetadata = Field(default_factory=CoreMetadata)
    errors: List[str] = Field(default_factory=list)
