"""
Downloadable renderings of a complete IP asset bundle.

Three formats are produced from the same CompleteIPData: pretty-printed
JSON, Markdown for reading and a fixed-width plain-text report.
"""

import json
import structlog
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from ip_provenance import config
from ip_provenance.core.utils import explorer_ip_url, format_registration_date, gateway_url, sanitize_filename
from ip_provenance.models.asset import CompleteIPData, ExportFormat, ResolvedFile
from ip_provenance.services.knowledge import export_markdown

logger = structlog.get_logger()

__all__ = [
    "render_json",
    "render_markdown",
    "render_text",
    "render_export",
    "export_filename",
    "EXPORT_MEDIA_TYPES",
]

EXPORT_MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.MARKDOWN: "text/markdown",
    ExportFormat.TEXT: "text/plain",
}

_EXTENSIONS = {
    ExportFormat.JSON: "json",
    ExportFormat.MARKDOWN: "md",
    ExportFormat.TEXT: "txt",
}

RULE_WIDTH = 80

# License record field -> display label, in report order
_LICENSE_LABELS = [
    ("amount", "Amount"),
    ("minting_fee_paid", "Minting Fee Paid"),
    ("unit_minting_fee", "Unit Minting Fee"),
    ("revenue_share_percentage", "Revenue Share"),
    ("minted_at", "Minted At"),
    ("receiver_address", "Receiver"),
    ("minter_address", "Minter"),
]


def render_json(data: CompleteIPData) -> str:
    return json.dumps(data.dict(), indent=2, ensure_ascii=False, default=str)


def _license_terms_url(terms_id: Any) -> str:
    return f"{config.PROTOCOL_EXPLORER_URL}/license-terms/{terms_id}"


def _created_at(value: Any) -> str:
    try:
        return format_registration_date(int(value) // 1000)
    except (TypeError, ValueError):
        return str(value)


def _license_value(field: str, value: Any) -> str:
    if field in ("minting_fee_paid", "unit_minting_fee"):
        return f"{value} WIP"
    if field == "revenue_share_percentage":
        return f"{value}%"
    return str(value)


def _is_research_paper(document: Any) -> bool:
    return (isinstance(document, dict)
            and isinstance(document.get("metadata"), dict)
            and isinstance(document.get("sections"), dict))


def _file_lines(file: ResolvedFile, uri_label: str = "URL") -> List[str]:
    lines = [f"- **{uri_label}:** {file.url}\n"]
    if file.cid:
        lines.append(f"- **IPFS Hash:** `{file.cid}`\n")
        lines.append(f"- **IPFS Gateway URL:** {gateway_url(f'ipfs://{file.cid}')}\n")
    if file.hash:
        lines.append(f"- **Content Hash:** `{file.hash}`\n")
    return lines


def _knowledge_markdown(file: ResolvedFile) -> List[str]:
    lines = ["### AI Knowledge File\n\n",
             "This file enables AI-powered interpretation of and natural language interaction "
             "with the sensor data.\n\n"]
    lines.extend(_file_lines(file))
    lines.append("\n")
    if file.raw is None:
        lines.append("*Content could not be fetched.*\n\n")
        return lines

    if _is_research_paper(file.parsed):
        try:
            lines.append("#### Research Paper\n\n")
            lines.append(export_markdown(file.parsed))
            lines.append("\n")
            return lines
        except (KeyError, TypeError) as e:
            logger.warning("Research paper not renderable, exporting raw JSON", error=str(e))
            lines.pop()

    lines.append(f"#### Complete Knowledge File\n\n```json\n{file.raw}\n```\n\n")
    return lines


def render_markdown(data: CompleteIPData, generated_at: Optional[datetime] = None) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    md = [f"# {data.title}\n\n", "## Basic Information\n\n",
          f"- **IP Asset ID:** `{data.ip_id}`\n",
          f"- **Owner:** `{data.owner}`\n",
          f"- **Registration Date:** {data.registration_date}\n",
          f"- **Registration Timestamp:** {data.registered_timestamp or 'Not Available'}\n\n"]

    if data.description:
        md.append(f"## Description\n\n{data.description}\n\n")

    if data.location or data.sensor_type:
        md.append("## Location & Context\n\n")
        for label, value in (("Location", data.location), ("Sensor Type", data.sensor_type),
                             ("Sensor Health", data.sensor_health), ("Data Timestamp", data.data_timestamp)):
            if value:
                md.append(f"- **{label}:** {value}\n")
        md.append("\n")

    if data.creators:
        md.append("## Creators\n\n")
        for number, creator in enumerate(data.creators, start=1):
            md.append(f"{number}. **{creator.get('name')}**\n")
            md.append(f"   - Address: `{creator.get('address')}`\n")
            md.append(f"   - Contribution: {creator.get('contributionPercent')}%\n\n")

    md.append("## Media & Files\n\n")
    if data.image:
        md.append("### Image\n")
        md.extend(_file_lines(data.image))
        md.append("\n")
    if data.media:
        md.append("### Media File\n")
        md.extend(_file_lines(data.media))
        md.append(f"- **Type:** {data.media.media_type or 'unknown'}\n\n")
    if data.knowledge_file:
        md.extend(_knowledge_markdown(data.knowledge_file))

    md.append("## Metadata URIs & IPFS Links\n\n")
    for heading, file in (("IP Metadata URI", data.ip_metadata), ("NFT Token Metadata URI", data.nft_metadata)):
        if file:
            md.append(f"### {heading}\n")
            md.extend(_file_lines(file, uri_label="URI"))
            md.append("\n")

    if data.license_info:
        terms_id = data.license_info.get("license_terms_id")
        md.append("## License Information\n\n")
        md.append(f"- **License Terms ID:** `{terms_id}`\n")
        md.append(f"- **License Explorer:** {_license_terms_url(terms_id)}\n")
        for field, label in _LICENSE_LABELS:
            value = data.license_info.get(field)
            if value is not None and value != "":
                md.append(f"- **{label}:** {_license_value(field, value)}\n")
        token_ids = data.license_info.get("license_token_ids")
        if token_ids:
            md.append(f"- **License Token IDs:** {', '.join(str(t) for t in token_ids)}\n")
        md.append("\n")

    if data.ip_metadata and data.ip_metadata.parsed:
        parsed = data.ip_metadata.parsed
        md.append("## IP Metadata (Complete JSON from IPFS)\n\n")
        md.append(f"**Source URI:** {data.ip_metadata.url}\n\n")
        md.append(f"```json\n{data.ip_metadata.raw}\n```\n\n")
        md.append("### Key Metadata Fields\n\n")
        if parsed.get("title"):
            md.append(f"- **Title:** {parsed['title']}\n")
        if parsed.get("createdAt"):
            md.append(f"- **Created At:** {_created_at(parsed['createdAt'])}\n")
        for creator in parsed.get("creators") or []:
            md.append(f"- **Creator:** {creator.get('name')} ({creator.get('address')}) - "
                      f"{creator.get('contributionPercent')}%\n")
        if parsed.get("parentIpId"):
            md.append(f"- **Parent IP Asset:** `{parsed['parentIpId']}`\n")
        ai = parsed.get("aiMetadata") or {}
        if ai.get("characterFileUrl"):
            md.append(f"- **Knowledge File URL:** {ai['characterFileUrl']}\n")
        if ai.get("characterFileHash"):
            md.append(f"- **Knowledge File Hash:** `{ai['characterFileHash']}`\n")
        md.append("\n")

    if data.nft_metadata and data.nft_metadata.parsed:
        parsed = data.nft_metadata.parsed
        md.append("## NFT Metadata (Complete JSON from IPFS)\n\n")
        md.append(f"**Source URI:** {data.nft_metadata.url}\n\n")
        md.append(f"```json\n{data.nft_metadata.raw}\n```\n\n")
        md.append("### Key NFT Fields\n\n")
        if parsed.get("name"):
            md.append(f"- **Name:** {parsed['name']}\n")
        if parsed.get("image"):
            md.append(f"- **Image:** {parsed['image']}\n")
        for attribute in parsed.get("attributes") or []:
            if isinstance(attribute, dict):
                md.append(f"- **{attribute.get('trait_type')}:** {attribute.get('value')}\n")
        md.append("\n")

    if data.dataset_context:
        context = data.dataset_context
        md.append("## Dataset Context\n\n")
        if context.get("sensor_data_id") is not None:
            md.append(f"- **Sensor Data ID:** {context['sensor_data_id']}\n")
        if context.get("source"):
            md.append(f"- **Source:** {context['source']}\n")
        if context.get("raw_sensor_data"):
            md.append(f"\n### Raw Sensor Data\n\n```\n{context['raw_sensor_data']}\n```\n")
        md.append("\n")

    if data.errors:
        md.append("## Unresolved Content\n\n")
        md.extend(f"- {error}\n" for error in data.errors)
        md.append("\n")

    md.append("## Story Protocol Links\n\n")
    md.append(f"- **IP Asset Explorer:** {explorer_ip_url(data.ip_id)}\n")
    if data.license_info:
        md.append(f"- **License Terms Explorer:** {_license_terms_url(data.license_info.get('license_terms_id'))}\n")
    md.append("\n---\n\n")
    md.append(f"*Generated on {generated_at.strftime('%B %d, %Y at %I:%M %p UTC')}*\n\n")
    md.append(f"*IP Asset: {data.ip_id}*\n")
    return "".join(md)


def _section(title: str) -> str:
    return f"{title}\n{'-' * RULE_WIDTH}\n"


def render_text(data: CompleteIPData, generated_at: Optional[datetime] = None) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    txt = [f"IP ASSET COMPLETE METADATA\n{'=' * RULE_WIDTH}\n\n", _section("BASIC INFORMATION"),
           f"{'Title:':<20}{data.title}\n",
           f"{'IP Asset ID:':<20}{data.ip_id}\n",
           f"{'Owner:':<20}{data.owner}\n",
           f"{'Registration Date:':<20}{data.registration_date}\n",
           f"{'Timestamp:':<20}{data.registered_timestamp or 'Not Available'}\n\n"]

    if data.description:
        txt.append(_section("DESCRIPTION"))
        txt.append(f"{data.description}\n\n")

    if data.location or data.sensor_type:
        txt.append(_section("LOCATION & CONTEXT"))
        for label, value in (("Location:", data.location), ("Sensor Type:", data.sensor_type),
                             ("Sensor Health:", data.sensor_health), ("Data Timestamp:", data.data_timestamp)):
            if value:
                txt.append(f"{label:<16}{value}\n")
        txt.append("\n")

    if data.creators:
        txt.append(_section("CREATORS"))
        for number, creator in enumerate(data.creators, start=1):
            txt.append(f"{number}. {creator.get('name')} ({creator.get('contributionPercent')}%)\n")
            txt.append(f"   Address: {creator.get('address')}\n\n")

    txt.append(_section("MEDIA & FILES"))
    for label, file in (("Image", data.image), ("Media", data.media)):
        if file:
            txt.append(f"{label + ' URL:':<17}{file.url}\n")
            txt.append(f"{label + ' IPFS:':<17}{file.cid or ''}\n")
            txt.append(f"{label + ' Hash:':<17}{file.hash}\n\n")

    txt.append(_section("METADATA URIS"))
    for label, value in (("IP Metadata URI:", data.metadata_uri), ("NFT Token URI:", data.nft_token_uri),
                         ("Metadata Hash:", data.metadata_hash), ("NFT Metadata Hash:", data.nft_metadata_hash)):
        if value:
            txt.append(f"{label:<21}{value}\n")
    txt.append("\n")

    if data.license_info:
        txt.append(_section("LICENSE INFORMATION"))
        txt.append(f"{'License Terms ID:':<21}{data.license_info.get('license_terms_id')}\n")
        for field, label in _LICENSE_LABELS[:5]:
            value = data.license_info.get(field)
            if value is not None and value != "":
                txt.append(f"{label + ':':<21}{_license_value(field, value)}\n")
        txt.append("\n")

    for title, file in (("IP METADATA (from IPFS)", data.ip_metadata),
                        ("NFT METADATA (from IPFS)", data.nft_metadata)):
        if file and file.raw:
            txt.append(_section(title))
            txt.append(f"{file.raw}\n\n")

    if data.knowledge_file:
        txt.append(_section("AI KNOWLEDGE FILE"))
        txt.append(f"URL:  {data.knowledge_file.url}\n")
        txt.append(f"Hash: {data.knowledge_file.hash}\n\n")
        txt.append(f"Content:\n{data.knowledge_file.raw or 'Content could not be fetched.'}\n\n")

    raw_sensor_data = (data.dataset_context or {}).get("raw_sensor_data")
    if raw_sensor_data:
        txt.append(_section("RAW SENSOR DATA"))
        txt.append(f"{raw_sensor_data}\n\n")

    if data.errors:
        txt.append(_section("UNRESOLVED CONTENT"))
        txt.extend(f"{error}\n" for error in data.errors)
        txt.append("\n")

    txt.append(f"{'=' * RULE_WIDTH}\n")
    txt.append(f"Generated on {generated_at.strftime('%B %d, %Y at %I:%M %p UTC')}\n")
    return "".join(txt)


def export_filename(data: CompleteIPData, export_format: ExportFormat,
                    generated_at: Optional[datetime] = None) -> str:
    """Download name: lower-cased title plus the export date."""
    generated_at = generated_at or datetime.now(timezone.utc)
    return sanitize_filename(f"{data.title.lower()}_{generated_at.date().isoformat()}.{_EXTENSIONS[export_format]}")


def render_export(data: CompleteIPData, export_format: ExportFormat,
                  generated_at: Optional[datetime] = None) -> Tuple[str, str, str]:
    """Return (content, filename, media type) for one export format."""
    export_format = ExportFormat(export_format)
    generated_at = generated_at or datetime.now(timezone.utc)
    if export_format == ExportFormat.MARKDOWN:
        content = render_markdown(data, generated_at)
    elif export_format == ExportFormat.TEXT:
        content = render_text(data, generated_at)
    else:
        content = render_json(data)
    logger.info("IP asset exported", ip_id=data.ip_id, format=export_format.value, size=len(content))
    return content, export_filename(data, export_format, generated_at), EXPORT_MEDIA_TYPES[export_format]
