"""
Read path for on-chain provenance metadata.

read_core is a plain ledger read and raises on failure; callers treat that
as "metadata unavailable". read_enriched and read_complete never raise:
every off-chain resolution step fails on its own and leaves its field empty.
"""

import base64
import binascii
import json
import structlog
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from ip_provenance import config
from ip_provenance.core.errors import FetchError, ProvenanceError
from ip_provenance.core.hashing import hash_remote
from ip_provenance.core.ledger import LedgerClient
from ip_provenance.core.utils import extract_cid, format_registration_date, gateway_url
from ip_provenance.models.asset import (
    CompleteIPData, CoreMetadata, EnrichedMetadata, IntegrityReport, ResolvedFile,
)

logger = structlog.get_logger()

__all__ = ["ProvenanceReader", "decode_attribute_bag", "DATA_URI_PREFIX"]

DATA_URI_PREFIX = "data:application/json;base64,"

# License index columns carried into an export
LICENSE_EXPORT_FIELDS = (
    "license_terms_id",
    "amount",
    "minting_fee_paid",
    "unit_minting_fee",
    "revenue_share_percentage",
    "license_token_ids",
    "minted_at",
    "receiver_address",
    "minter_address",
)

# Attribute bag trait -> core metadata field it overrides
_OVERLAY_FIELDS = {
    "Owner": "owner",
    "MetadataURI": "metadata_uri",
    "NFTTokenURI": "nft_token_uri",
    "MetadataHash": "metadata_hash",
    "NFTMetadataHash": "nft_metadata_hash",
    "Registration Date": "registration_date",
}


def decode_attribute_bag(value: str) -> Dict[str, Any]:
    """
    Decode a token JSON document, inline base64 data URI or plain JSON.

    Raises:
        ValueError: not decodable to a JSON object
    """
    text = value.strip()
    if text.startswith(DATA_URI_PREFIX):
        try:
            text = base64.b64decode(text[len(DATA_URI_PREFIX):], validate=False).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid base64 attribute bag: {e}")
    document = json.loads(text)
    if not isinstance(document, dict):
        raise ValueError("Attribute bag is not a JSON object")
    return document


def _attributes_map(document: Dict[str, Any]) -> Dict[str, Any]:
    attributes = document.get("attributes") or []
    if isinstance(attributes, dict):
        return dict(attributes)
    return {
        a["trait_type"]: a.get("value")
        for a in attributes
        if isinstance(a, dict) and "trait_type" in a
    }


class ProvenanceReader:
    """Reads core metadata and resolves the documents it points at."""

    def __init__(self, ledger: LedgerClient, session: Optional[requests.Session] = None,
                 max_workers: int = 8):
        self.ledger = ledger
        self.session = session or requests.Session()
        self.max_workers = max_workers

    def read_core(self, ip_id: str) -> CoreMetadata:
        return self.ledger.get_core_metadata(ip_id)

    def read_json_string(self, ip_id: str) -> Optional[str]:
        """Token JSON string of the asset, or None when unavailable."""
        try:
            return self.ledger.get_json_string(ip_id)
        except ProvenanceError as e:
            logger.warning("JSON string unavailable", ip_id=ip_id, error=str(e))
            return None

    def is_supported(self, ip_id: str) -> bool:
        try:
            return self.ledger.is_supported(ip_id)
        except ProvenanceError as e:
            logger.warning("Support check failed", ip_id=ip_id, error=str(e))
            return False

    def _get(self, url: str) -> requests.Response:
        try:
            response = self.session.get(url, timeout=config.HTTP_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}", url=url)
        if not 200 <= response.status_code < 300:
            raise FetchError(f"Failed to fetch {url}: HTTP {response.status_code}",
                             url=url, status_code=response.status_code)
        return response

    def fetch_document(self, uri: str) -> Dict[str, Any]:
        """
        Resolve a metadata URI to its JSON document.

        Raises:
            FetchError: unreachable, non-2xx or not JSON
        """
        if uri.startswith(DATA_URI_PREFIX):
            try:
                return decode_attribute_bag(uri)
            except ValueError as e:
                raise FetchError(f"Undecodable inline document: {e}", url=uri[:64])

        url = gateway_url(uri)
        response = self._get(url)
        try:
            document = response.json()
        except ValueError:
            raise FetchError(f"Document at {url} is not valid JSON", url=url)
        if not isinstance(document, dict):
            raise FetchError(f"Document at {url} is not a JSON object", url=url)
        return document

    def fetch_text(self, uri: str) -> Tuple[str, Optional[Any]]:
        """
        Resolve a URI to its text and, when that text is JSON, its parsed value.

        Raises:
            FetchError: unreachable or non-2xx
        """
        if uri.startswith(DATA_URI_PREFIX):
            document = self.fetch_document(uri)
            return json.dumps(document, indent=2, ensure_ascii=False), document
        raw = self._get(gateway_url(uri)).text
        try:
            return raw, json.loads(raw)
        except ValueError:
            return raw, None

    def _try_fetch(self, ip_id: str, uri: str, label: str) -> Optional[Dict[str, Any]]:
        if not uri:
            return None
        try:
            return self.fetch_document(uri)
        except FetchError as e:
            logger.warning("Metadata document unavailable", ip_id=ip_id, document=label, error=str(e))
            return None

    def read_enriched(self, ip_id: str) -> EnrichedMetadata:
        """Core metadata plus whatever off-chain documents resolve. Never raises."""
        enriched = EnrichedMetadata(ip_id=ip_id, is_supported=self.is_supported(ip_id))

        try:
            core = self.read_core(ip_id)
        except ProvenanceError as e:
            logger.warning("Core metadata unavailable", ip_id=ip_id, error=str(e))
            enriched.error = str(e)
            core = CoreMetadata()

        enriched.json_string = self.read_json_string(ip_id)
        if enriched.json_string:
            try:
                token_document = decode_attribute_bag(enriched.json_string)
                enriched.token_document = token_document
                enriched.attributes = _attributes_map(token_document)
                core = self._overlay(core, enriched.attributes)
            except ValueError as e:
                logger.warning("Attribute bag undecodable", ip_id=ip_id, error=str(e))

        enriched.core_metadata = core
        enriched.ip_metadata_content = self._try_fetch(ip_id, core.metadata_uri, "ip_metadata")
        enriched.nft_metadata_content = self._try_fetch(ip_id, core.nft_token_uri, "nft_metadata")
        return enriched

    @staticmethod
    def _overlay(core: CoreMetadata, attributes: Dict[str, Any]) -> CoreMetadata:
        updates = {}
        for trait, field in _OVERLAY_FIELDS.items():
            value = attributes.get(trait)
            if field == "registration_date":
                if isinstance(value, (int, str)) and str(value).isdigit():
                    updates[field] = int(value)
            elif isinstance(value, str) and value:
                updates[field] = value
        return core.copy(update=updates) if updates else core

    def read_complete(self, ip_id: str, license_record: Optional[Dict[str, Any]] = None,
                      sensor_record: Optional[Dict[str, Any]] = None) -> CompleteIPData:
        """
        Gather everything known about an asset into one exportable bundle.

        Builds on read_enriched and additionally fetches the knowledge file
        the asset metadata links to. License and sensor records come from the
        off-chain index and are optional. Never raises; whatever did not
        resolve is listed in errors.
        """
        enriched = self.read_enriched(ip_id)
        core = enriched.core_metadata
        ip_doc = enriched.ip_metadata_content or {}
        nft_doc = enriched.nft_metadata_content or {}
        sensor = sensor_record or {}

        data = CompleteIPData(
            ip_id=ip_id,
            title=ip_doc.get("title") or sensor.get("title") or "Untitled IP Asset",
            description=ip_doc.get("description") or "",
            registration_date=format_registration_date(core.registration_date),
            registered_timestamp=_iso_date(core.registration_date),
            owner=core.owner,
            location=sensor.get("location"),
            sensor_type=sensor.get("type"),
            sensor_health=sensor.get("sensor_health"),
            data_timestamp=_text(sensor.get("timestamp")),
            creators=[c for c in ip_doc.get("creators") or [] if isinstance(c, dict)],
            metadata_uri=core.metadata_uri or None,
            nft_token_uri=core.nft_token_uri or None,
            metadata_hash=core.metadata_hash,
            nft_metadata_hash=core.nft_metadata_hash,
            core_metadata=core,
        )
        if enriched.error:
            data.errors.append(f"core metadata: {enriched.error}")

        for field, uri, expected, document in (
            ("ip_metadata", core.metadata_uri, core.metadata_hash, enriched.ip_metadata_content),
            ("nft_metadata", core.nft_token_uri, core.nft_metadata_hash, enriched.nft_metadata_content),
        ):
            if document is not None:
                setattr(data, field, ResolvedFile(
                    url=uri, cid=extract_cid(uri), hash=expected,
                    raw=json.dumps(document, indent=2, ensure_ascii=False), parsed=document,
                ))
            elif uri:
                data.errors.append(f"{field}: {uri} did not resolve")

        if ip_doc.get("image"):
            data.image = ResolvedFile(url=ip_doc["image"], cid=extract_cid(ip_doc["image"]),
                                      hash=ip_doc.get("imageHash") or "")
        if ip_doc.get("mediaUrl"):
            data.media = ResolvedFile(url=ip_doc["mediaUrl"], cid=extract_cid(ip_doc["mediaUrl"]),
                                      hash=ip_doc.get("mediaHash") or "",
                                      media_type=ip_doc.get("mediaType") or "unknown")

        ai_metadata = ip_doc.get("aiMetadata") or {}
        knowledge_url = ai_metadata.get("characterFileUrl")
        if knowledge_url:
            knowledge = ResolvedFile(url=knowledge_url, cid=extract_cid(knowledge_url),
                                     hash=ai_metadata.get("characterFileHash") or "")
            try:
                knowledge.raw, knowledge.parsed = self.fetch_text(knowledge_url)
            except FetchError as e:
                logger.warning("Knowledge file unavailable", ip_id=ip_id, error=str(e))
                data.errors.append(f"knowledge file: {e}")
            data.knowledge_file = knowledge

        if license_record:
            data.license_info = {
                key: _text(license_record[key]) if key == "minted_at" else license_record[key]
                for key in LICENSE_EXPORT_FIELDS
                if license_record.get(key) is not None
            }
        if sensor_record:
            data.dataset_context = {
                "sensor_data_id": sensor.get("id"),
                "raw_sensor_data": sensor.get("data"),
                "source": sensor.get("source"),
            }

        logger.info("Complete metadata gathered",
                    ip_id=ip_id, has_ip_metadata=data.ip_metadata is not None,
                    has_knowledge_file=data.knowledge_file is not None, errors=len(data.errors))
        return data

    def verify_integrity(self, ip_id: str) -> IntegrityReport:
        """Recompute both content hashes from the resolvable documents and compare."""
        report = IntegrityReport(ip_id=ip_id)
        try:
            core = self.read_core(ip_id)
        except ProvenanceError as e:
            report.errors.append(f"core metadata: {e}")
            return report

        for uri, expected, field in (
            (core.metadata_uri, core.metadata_hash, "metadata"),
            (core.nft_token_uri, core.nft_metadata_hash, "nft_metadata"),
        ):
            if not uri:
                report.errors.append(f"{field}: no URI registered")
                continue
            try:
                computed = hash_remote(gateway_url(uri), session=self.session)
            except FetchError as e:
                report.errors.append(f"{field}: {e}")
                continue
            setattr(report, f"computed_{field}_hash", computed)
            setattr(report, f"{field}_hash_matches", computed.lower() == expected.lower())

        logger.info("Integrity verified", ip_id=ip_id, verified=report.verified, errors=len(report.errors))
        return report

    def batch_get_core_metadata(self, ip_ids: Sequence[str]) -> Dict[str, Optional[CoreMetadata]]:
        """Read core metadata for several assets concurrently. Failed reads map to None."""

        def read(ip_id: str) -> Optional[CoreMetadata]:
            try:
                return self.read_core(ip_id)
            except ProvenanceError as e:
                logger.warning("Core metadata unavailable", ip_id=ip_id, error=str(e))
                return None

        return self._batch(ip_ids, read)

    def batch_get_enriched_metadata(self, ip_ids: Sequence[str]) -> Dict[str, EnrichedMetadata]:
        return self._batch(ip_ids, self.read_enriched)

    def _batch(self, ip_ids: Sequence[str], read) -> Dict[str, Any]:
        unique: List[str] = list(dict.fromkeys(ip_ids))
        if not unique:
            return {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(unique))) as pool:
            results = list(pool.map(read, unique))
        return dict(zip(unique, results))

    @staticmethod
    def display_registration_date(core: Optional[CoreMetadata]) -> str:
        return format_registration_date(core.registration_date if core else None)


def _iso_date(seconds: Optional[int]) -> Optional[str]:
    if not seconds:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc).isoformat()


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if isinstance(value, datetime) else str(value)
