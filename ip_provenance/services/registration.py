"""
Registration orchestration for original and derivative IP assets.

Both flows run the same ordered stages:

    1. knowledge artifact built and uploaded
    2. asset/token metadata assembled
    3. both metadata documents hashed and uploaded
    4. ledger registration submitted
    5. result written to the off-chain index (best effort)

Preconditions are checked before any I/O. A failure in stages 1-4 aborts
the flow and reports the upstream message unchanged; documents already
uploaded stay orphaned in storage since content-addressed storage has no
delete. The index write only happens after the ledger call succeeded, and
its failure is downgraded to a warning.
"""

import structlog
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ip_provenance import config
from ip_provenance.core.errors import PersistenceWarning, ProvenanceError, ValidationError
from ip_provenance.core.hashing import hash_json, hash_remote, hash_string
from ip_provenance.core.ledger import LedgerClient, require_wallet
from ip_provenance.core.storage import StorageClient
from ip_provenance.core.utils import explorer_ip_url, gateway_url, is_blank, to_wei
from ip_provenance.models.asset import (
    ContentReference,
    DerivativeBounds,
    LicenseTerms,
    ParentLineage,
    RegistrationKind,
    RegistrationResult,
    RegistrationStep,
    RoyaltyShare,
    SensorDataSource,
    SigningContext,
    SynthesisContext,
)
from ip_provenance.services.knowledge import export_json
from ip_provenance.services.metadata import MetadataSynthesizer, validate_derivative_params, validate_source

logger = structlog.get_logger()

__all__ = [
    "RegistrationProgress",
    "RegistrationOrchestrator",
    "commercial_remix_terms",
    "UNKNOWN_LOCATION",
]

UNKNOWN_LOCATION = "Unknown Location"

StepCallback = Callable[[RegistrationStep], None]


class RegistrationProgress:
    """
    Step tracker for one registration.

    Moves strictly one stage at a time and never backwards. Once failed it
    stays failed; observers are told about every transition.
    """

    def __init__(self, on_step: Optional[StepCallback] = None):
        self.step = RegistrationStep.IDLE
        self.failed = False
        self._on_step = on_step

    def advance(self, step: RegistrationStep) -> None:
        if self.failed:
            raise RuntimeError("Cannot advance a failed registration")
        if step != self.step + 1:
            raise ValueError(f"Registration cannot move from {self.step.name} to {step.name}")
        self.step = step
        logger.info("Registration step completed", step=step.name, index=int(step))
        if self._on_step:
            self._on_step(step)

    def fail(self) -> None:
        self.failed = True
        logger.warning("Registration failed", step=self.step.name)

    @property
    def done(self) -> bool:
        return self.step == RegistrationStep.DONE


def commercial_remix_terms(terms: LicenseTerms) -> Dict[str, Any]:
    """Commercial-remix license terms in the shape the ledger gateway takes."""
    return {
        "flavor": "commercialRemix",
        "commercialUse": True,
        "derivativesAllowed": True,
        "derivativesAttribution": True,
        "derivativesReciprocal": True,
        "transferable": True,
        "commercialRevShare": terms.revenue_share,
        "defaultMintingFee": str(to_wei(terms.minting_fee)),
        "currency": terms.currency,
        "royaltyPolicy": config.ROYALTY_POLICY_LAP_ADDRESS,
    }


class RegistrationOrchestrator:
    """Drives original and derivative IP asset registration end to end."""

    def __init__(self, storage: StorageClient, ledger: LedgerClient, index=None,
                 synthesizer: Optional[MetadataSynthesizer] = None,
                 spg_nft_contract: Optional[str] = None):
        self.storage = storage
        self.ledger = ledger
        self.index = index
        self.synthesizer = synthesizer or MetadataSynthesizer()
        self.spg_nft_contract = spg_nft_contract or config.SPG_NFT_CONTRACT_ADDRESS

    def register_original(self, source: SensorDataSource, creator_name: str, creator_address: str,
                          signing: Optional[SigningContext], license_terms: Optional[LicenseTerms] = None,
                          location: Optional[str] = None, sensor_data_id: Optional[int] = None,
                          on_step: Optional[StepCallback] = None) -> RegistrationResult:
        """Register a sensor dataset as an original IP asset with commercial-remix terms."""
        progress = RegistrationProgress(on_step)
        result = RegistrationResult(success=False, kind=RegistrationKind.ORIGINAL)
        terms = license_terms or LicenseTerms()
        sensor_data_id = sensor_data_id if sensor_data_id is not None else source.id

        try:
            self._require(creator_name, "creator_name", "Creator name is required")
            problems = validate_source(source)
            if problems:
                raise ValidationError(", ".join(message for _, message in problems), field=problems[0][0])
            signing = require_wallet(signing)
            context = SynthesisContext(
                kind=RegistrationKind.ORIGINAL,
                location=self._location(source, location),
                creator_name=creator_name.strip(),
                creator_address=creator_address or signing.address,
            )

            logger.info("Starting original IP registration",
                        title=source.title, sensor_type=source.type, sensor_data_id=sensor_data_id)

            context = self._upload_knowledge(source, context, result, progress)
            ip_doc, nft_doc = self._assemble(source, context, result, progress)
            ip_metadata = self._upload_metadata(ip_doc, nft_doc, result, progress)

            registered = self.ledger.register_ip_asset(
                signing,
                self.spg_nft_contract,
                [commercial_remix_terms(terms)],
                ip_metadata,
            )
            result.ip_id = registered["ip_id"]
            result.tx_hash = registered["tx_hash"]
            result.token_id = registered.get("token_id")
            result.license_terms_ids = registered.get("license_terms_ids") or []
            result.explorer_url = explorer_ip_url(result.ip_id)
            progress.advance(RegistrationStep.LEDGER_REGISTERED)
            logger.info("IP asset registered", ip_id=result.ip_id, tx_hash=result.tx_hash)

        except ProvenanceError as e:
            return self._failed(result, progress, e)

        if sensor_data_id is None:
            self._warn(result, "IP registered but no sensor data record id was given; index not updated")
        else:
            self._persist(result, lambda: self.index.save_ip_registration(sensor_data_id, {
                "creator_address": context.creator_address,
                "ip_asset_id": result.ip_id,
                "story_explorer_url": result.explorer_url,
                "transaction_hash": result.tx_hash,
                "license_terms_ids": result.license_terms_ids,
                "metadata_url": result.metadata_url,
                "revenue_share": terms.revenue_share,
                "minting_fee": str(terms.minting_fee),
            }))

        return self._finish(result, progress)

    def register_derivative(self, source: SensorDataSource, creator_name: str, creator_address: str,
                            signing: Optional[SigningContext], parent_ip_id: str, parent_license_terms_id: str,
                            sensor_data_id: Optional[int], royalty_recipient: Optional[str] = None,
                            royalty_percentage: Optional[float] = None,
                            bounds: Optional[DerivativeBounds] = None, location: Optional[str] = None,
                            on_step: Optional[StepCallback] = None) -> RegistrationResult:
        """
        Register a derivative of an existing IP asset.

        The source is the parent's sensor record; its raw payload is carried
        into the derivative's description unchanged. sensor_data_id is
        mandatory so the derivative can be tied back to its dataset.
        """
        progress = RegistrationProgress(on_step)
        result = RegistrationResult(success=False, kind=RegistrationKind.DERIVATIVE, parent_ip_id=parent_ip_id)
        bounds = bounds or DerivativeBounds()

        try:
            self._require(creator_name, "creator_name", "Creator name is required")
            self._require(parent_ip_id, "parent_ip_id", "Parent IP asset id is required")
            self._require(parent_license_terms_id, "parent_license_terms_id",
                          "Parent license terms id is required")
            if sensor_data_id is None:
                raise ValidationError("Sensor data record id is required to register a derivative",
                                      field="sensor_data_id")
            signing = require_wallet(signing)

            recipient = signing.address if is_blank(royalty_recipient) else royalty_recipient
            royalty_shares = None
            if royalty_percentage is not None and not 0 <= royalty_percentage <= 100:
                raise ValidationError("Royalty percentage must be between 0 and 100",
                                      field="royalty_percentage")
            if royalty_percentage:
                share = RoyaltyShare(recipient=recipient, percentage=royalty_percentage)
                royalty_shares = [share.dict()]

            context = SynthesisContext(
                kind=RegistrationKind.DERIVATIVE,
                location=self._location(source, location),
                creator_name=creator_name.strip(),
                creator_address=creator_address or signing.address,
                lineage=ParentLineage(
                    parent_ip_id=parent_ip_id,
                    parent_license_terms_id=str(parent_license_terms_id),
                    parent_creator_address=source.creator_address,
                ),
                registration_date=datetime.now(timezone.utc).isoformat(),
            )
            problems = validate_derivative_params(source, context)
            if problems:
                raise ValidationError(f"Invalid metadata parameters: {', '.join(problems)}")

            logger.info("Starting derivative IP registration",
                        parent_ip_id=parent_ip_id, license_terms_id=str(parent_license_terms_id),
                        sensor_data_id=sensor_data_id)

            context = self._upload_knowledge(source, context, result, progress)
            ip_doc, nft_doc = self._assemble(source, context, result, progress)
            ip_metadata = self._upload_metadata(ip_doc, nft_doc, result, progress)

            registered = self.ledger.register_derivative_ip_asset(
                signing,
                self.spg_nft_contract,
                parent_ip_ids=[parent_ip_id],
                license_terms_ids=[str(parent_license_terms_id)],
                ip_metadata=ip_metadata,
                max_minting_fee=to_wei(bounds.max_minting_fee),
                max_revenue_share=bounds.max_revenue_share,
                max_rts=bounds.max_rts,
                royalty_shares=royalty_shares,
            )
            result.ip_id = registered["ip_id"]
            result.tx_hash = registered["tx_hash"]
            result.token_id = registered.get("token_id")
            result.explorer_url = explorer_ip_url(result.ip_id)
            progress.advance(RegistrationStep.LEDGER_REGISTERED)
            logger.info("Derivative IP asset registered",
                        ip_id=result.ip_id, parent_ip_id=parent_ip_id, tx_hash=result.tx_hash)

        except ProvenanceError as e:
            return self._failed(result, progress, e)

        self._persist(result, lambda: self.index.save_derivative_registration({
            "sensor_data_id": sensor_data_id,
            "derivative_ip_id": result.ip_id,
            "parent_ip_id": parent_ip_id,
            "license_terms_id": str(parent_license_terms_id),
            "creator_name": context.creator_name,
            "creator_address": context.creator_address,
            "royalty_recipient": recipient,
            "royalty_percentage": royalty_percentage,
            "transaction_hash": result.tx_hash,
            "story_explorer_url": result.explorer_url,
            "metadata_url": result.metadata_url,
            "nft_metadata_url": result.nft_metadata_url,
            "knowledge_file_url": result.knowledge_url,
            "knowledge_file_hash": result.knowledge_hash,
            "nft_token_id": result.token_id,
            "nft_contract_address": self.spg_nft_contract,
            "image_url": result.image_url,
            "image_hash": result.image_hash,
        }))

        return self._finish(result, progress)

    # Stages

    def _upload_knowledge(self, source: SensorDataSource, context: SynthesisContext,
                          result: RegistrationResult, progress: RegistrationProgress) -> SynthesisContext:
        document = self.synthesizer.build_knowledge(source, context)
        text = export_json(document)
        locator = self.storage.upload_file(text, self.synthesizer.knowledge_filename(source, context))
        knowledge = ContentReference(url=gateway_url(locator.uri), hash=hash_string(text))
        result.knowledge_url = knowledge.url
        result.knowledge_hash = knowledge.hash

        image = None
        if source.image_hash:
            image_url = gateway_url(f"ipfs://{source.image_hash}")
            image = ContentReference(url=image_url, hash=hash_remote(image_url))
            result.image_url = image.url
            result.image_hash = image.hash

        progress.advance(RegistrationStep.KNOWLEDGE_UPLOADED)
        return context.copy(update={"knowledge": knowledge, "image": image})

    def _assemble(self, source: SensorDataSource, context: SynthesisContext,
                  result: RegistrationResult, progress: RegistrationProgress):
        ip_doc, nft_doc, _ = self.synthesizer.build_asset_metadata(source, context)
        result.ip_metadata = ip_doc
        result.nft_metadata = nft_doc
        progress.advance(RegistrationStep.METADATA_ASSEMBLED)
        return ip_doc, nft_doc

    def _upload_metadata(self, ip_doc: Dict[str, Any], nft_doc: Dict[str, Any],
                         result: RegistrationResult, progress: RegistrationProgress) -> Dict[str, str]:
        # upload_json pins the canonical serialization that hash_json digests
        ip_locator = self.storage.upload_json(ip_doc, name="ip-metadata.json")
        nft_locator = self.storage.upload_json(nft_doc, name="nft-metadata.json")
        result.metadata_url = gateway_url(ip_locator.uri)
        result.nft_metadata_url = gateway_url(nft_locator.uri)
        progress.advance(RegistrationStep.METADATA_UPLOADED)
        return {
            "ipMetadataURI": result.metadata_url,
            "ipMetadataHash": hash_json(ip_doc),
            "nftMetadataURI": result.nft_metadata_url,
            "nftMetadataHash": hash_json(nft_doc),
        }

    def _persist(self, result: RegistrationResult, write: Callable[[], Any]) -> None:
        if self.index is None:
            logger.debug("No off-chain index configured, skipping persistence", ip_id=result.ip_id)
            return
        try:
            write()
            result.persisted = True
            logger.info("Registration saved to off-chain index", ip_id=result.ip_id)
        except PersistenceWarning as e:
            self._warn(result, str(e))

    # Helpers

    @staticmethod
    def _require(value: Any, field: str, message: str) -> None:
        if value is None or is_blank(str(value)):
            raise ValidationError(message, field=field)

    @staticmethod
    def _location(source: SensorDataSource, location: Optional[str]) -> str:
        for candidate in (location, source.location):
            if not is_blank(candidate):
                return candidate.strip()
        return UNKNOWN_LOCATION

    @staticmethod
    def _warn(result: RegistrationResult, message: str) -> None:
        logger.warning("Registration persistence warning", ip_id=result.ip_id, warning=message)
        result.warnings.append(message)

    @staticmethod
    def _failed(result: RegistrationResult, progress: RegistrationProgress,
                error: ProvenanceError) -> RegistrationResult:
        progress.fail()
        logger.error("IP registration failed",
                     kind=result.kind, step=progress.step.name,
                     error_type=type(error).__name__, error=str(error))
        result.success = False
        result.step = progress.step
        result.error = str(error)
        result.error_type = type(error).__name__
        return result

    @staticmethod
    def _finish(result: RegistrationResult, progress: RegistrationProgress) -> RegistrationResult:
        progress.advance(RegistrationStep.INDEX_PERSISTED)
        progress.advance(RegistrationStep.DONE)
        result.success = True
        result.step = progress.step
        return result
