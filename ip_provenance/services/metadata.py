"""
Metadata synthesis for original and derivative IP asset registrations.

Builds the asset-level descriptive document, the token-level display
document and the knowledge artifact. Documents never carry their own
content hashes; hashing happens over the final serialization at upload time.
"""

import re
import structlog
from typing import Any, Dict, List, Optional, Tuple

from ip_provenance.core.utils import (
    format_timestamp,
    gateway_url,
    is_blank,
    parse_timestamp,
    shorten_id,
    timestamp_millis,
)
from ip_provenance.models.asset import RegistrationKind, SensorDataSource, SynthesisContext
from ip_provenance.services.knowledge import build_character_file, build_research_paper

logger = structlog.get_logger()

__all__ = [
    "MetadataSynthesizer",
    "sensor_type_display_name",
    "extract_data_insights",
    "derivative_title",
    "derivative_description",
    "derivative_nft_description",
    "derivative_nft_attributes",
    "validate_source",
    "validate_derivative_params",
    "metadata_summary",
    "DATA_PRESERVATION_NOTICE",
]

IMAGE_MEDIA_TYPE = "image/svg+xml"

DATA_PRESERVATION_NOTICE = (
    "**Data Integrity**: All original sensor readings are preserved exactly as recorded in the parent "
    "IP asset. No data has been modified, filtered, or removed. This ensures complete traceability and "
    "verifiability of the source data."
)

_DISPLAY_NAMES = {
    "temperature": "Temperature & Humidity",
    "temp": "Temperature & Humidity",
    "moisture": "Soil Moisture",
    "soil": "Soil Moisture",
    "rainfall": "Rainfall & Precipitation",
    "rain": "Rainfall & Precipitation",
    "sunlight": "Solar Radiation & Light Intensity",
    "sun": "Solar Radiation & Light Intensity",
    "growth": "Crop Growth & Development",
    "crop": "Crop Growth & Development",
}

# Checked in order; the first matching keyword wins
_TYPE_INSIGHTS = [
    (("temp",), "Includes temperature and humidity measurements"),
    (("moisture", "soil"), "Includes soil moisture levels and irrigation data"),
    (("rain",), "Includes precipitation measurements and weather patterns"),
    (("sun", "light"), "Includes solar radiation and light intensity data"),
    (("growth", "crop"), "Includes crop development and phenological stage data"),
]

_NUMBER_PATTERN = re.compile(r"\d+\.?\d*")


def sensor_type_display_name(sensor_type: str) -> str:
    return _DISPLAY_NAMES.get(sensor_type.lower(), sensor_type)


def extract_data_insights(raw_data: str, sensor_type: str) -> str:
    """Short machine-readable summary of a raw payload."""
    insights = []
    numbers = _NUMBER_PATTERN.findall(raw_data)
    if len(numbers) > 1:
        insights.append(f"Contains {len(numbers)} data points")

    type_lower = sensor_type.lower()
    for keywords, insight in _TYPE_INSIGHTS:
        if any(keyword in type_lower for keyword in keywords):
            insights.append(insight)
            break

    return ". ".join(insights) + "."


def derivative_title(original_title: str, sensor_type: str, location: str) -> str:
    display_type = sensor_type_display_name(sensor_type)
    title_lower = original_title.lower()
    has_type = sensor_type.lower() in title_lower
    has_location = bool(location) and location.lower().split(",")[0] in title_lower

    if has_type and has_location:
        return f"Derivative AI Analysis: {original_title}"
    if has_type:
        return f"Derivative AI Analysis: {display_type} - {location}"
    return f"Derivative AI Analysis: {display_type} from {location}"


def derivative_description(source: SensorDataSource, context: SynthesisContext) -> str:
    """
    Markdown description of a derivative asset.

    The parent's raw payload is embedded unmodified; everything else is
    documentation layered around it.
    """
    lineage = context.lineage
    display_type = sensor_type_display_name(source.type)
    platform = source.source.upper() if source.source else "IoT Network"

    lines = [
        "## Derivative Agricultural Data Analysis",
        "",
        "This derivative IP asset contains comprehensive AI-generated research documentation and analysis "
        f"for **{display_type}** sensor data.",
        "",
        "### Source Information",
        f"- **Original Data Collection**: {format_timestamp(source.timestamp)}",
        f"- **Location**: {context.location}",
        f"- **Sensor Type**: {display_type}",
        f"- **Sensor Health Status**: {source.sensor_health}",
        f"- **Data Source**: {platform}",
        f"- **Parent IP Asset**: {shorten_id(lineage.parent_ip_id)}",
        f"- **Full Parent IP ID**: {lineage.parent_ip_id}",
    ]
    if lineage.parent_creator_address:
        lines.append(f"- **Original Creator Address**: {lineage.parent_creator_address}")
    if context.creator_name:
        lines.append(f"- **Derivative Creator**: {context.creator_name}")

    if source.data:
        lines += [
            "",
            "### Data Characteristics",
            extract_data_insights(source.data, source.type),
            "",
            "### Complete Sensor Data (Preserved from Parent IP)",
            "```",
            source.data,
            "```",
            "",
            DATA_PRESERVATION_NOTICE,
        ]

    lines += [
        "",
        "### Derivative Features",
        "This derivative IP asset includes:",
        "- **Complete Research Paper**: Comprehensive academic-style documentation with methodology, results, and analysis",
        "- **AI-Enhanced Interpretation**: Natural language explanations of technical sensor data",
        "- **Statistical Analysis**: Data trends, patterns, and agricultural insights",
        "- **Contextual Information**: Historical data context and agricultural best practices",
        "- **Machine-Readable Format**: Structured data optimized for AI processing and analysis",
        "- **Full Parent Data Preservation**: All original sensor readings and metadata retained without modification",
        "- **Enhanced Documentation**: Additional layers of analysis and interpretation built on top of original data",
        "",
        "### Data Lineage & Provenance",
        f"- **Parent IP Asset ID**: {lineage.parent_ip_id}",
        f"- **Parent License Terms ID**: {lineage.parent_license_terms_id}",
        "- **Derivation Type**: AI Research Analysis & Documentation",
        "- **Data Preservation**: 100% of original parent data retained",
        "- **Enhancement Type**: Non-destructive addition of research documentation and analysis",
    ]
    if lineage.parent_creator_address:
        lines += [
            f"- **Original Data Creator**: {lineage.parent_creator_address}",
            "- **Attribution**: Full credit maintained to original data collector",
        ]

    lines += [
        "",
        "### Use Cases",
        "- Agricultural research and analysis",
        "- Data-driven farming decisions",
        "- Climate and environmental studies",
        "- Machine learning training datasets",
        "- Academic research and publications",
        "- IoT system optimization",
        "- Precision agriculture applications",
        "- Weather pattern analysis",
        "- Crop yield predictions",
        "- Soil management optimization",
        "",
        "### Technical Specifications",
        "- **Data Format**: JSON with embedded research documentation",
        "- **Encoding**: UTF-8",
        "- **Timestamp Format**: ISO 8601",
        "- **Geographic Coordinates**: Included in location metadata",
        "- **Sensor Calibration**: Status and health metrics included",
        "- **Data Completeness**: 100% (all parent data preserved)",
        "",
        "### Blockchain Verification",
        "All data is cryptographically verified and immutably stored on Story Protocol blockchain, ensuring:",
        "- **Data Integrity**: Cryptographic hashing prevents tampering",
        "- **Provenance Tracking**: Complete chain of custody from sensor to derivative",
        "- **Authentic Attribution**: Verifiable creator and timestamp information",
        "- **Immutability**: Once recorded, data cannot be altered or deleted",
        "- **Transparency**: All transactions and data lineage publicly auditable",
        "",
        "### Access & Licensing",
        "This derivative IP asset can be licensed for:",
        "- Commercial agricultural applications",
        "- Research and academic purposes",
        "- Machine learning model training",
        "- Data aggregation and analytics services",
        "- Integration into farming management systems",
        "- Climate modeling and environmental monitoring",
        "",
        "All licensing respects the terms of the parent IP asset while adding value through enhanced "
        "documentation and analysis.",
    ]
    return "\n".join(lines)


def derivative_nft_description(source: SensorDataSource, context: SynthesisContext) -> str:
    lineage = context.lineage
    display_type = sensor_type_display_name(source.type)
    collected = format_timestamp(source.timestamp)

    blocks = [
        "# Derivative Agricultural IoT Dataset with AI Research Analysis",
        "**Asset Type**: Derivative IP with Comprehensive Research Documentation",
        f"**Original Data**: {display_type} measurements collected from {context.location} on {collected}",
        "**Documentation**: This derivative IP asset includes a complete AI-generated research paper with:\n"
        "- Detailed methodology and data collection protocols\n"
        "- Statistical analysis and pattern recognition\n"
        "- Agricultural insights and recommendations\n"
        "- Machine-readable structured data formats\n"
        "- Natural language interpretations for accessibility",
        f"**Parent IP**: This derivative is built upon parent IP asset {shorten_id(lineage.parent_ip_id)}, "
        "preserving all original sensor data while adding enhanced analysis and research documentation.",
        "**Data Preservation**: All sensor readings from the parent IP are preserved in their original form. "
        "No data has been modified, filtered, or removed.",
        f"**Full Parent IP Reference**: {lineage.parent_ip_id}",
    ]
    if lineage.parent_creator_address:
        blocks.append(f"**Original Data Creator**: {lineage.parent_creator_address}\n"
                      "**Attribution**: Full credit maintained to original data collector and sensor operator.")
    if context.creator_name:
        blocks.append(f"**Derivative Creator**: {context.creator_name}\n"
                      "**Derivative Enhancement**: AI-generated research documentation and analysis added as a "
                      "non-destructive layer on top of original data.")
    if source.data:
        blocks += [
            "---",
            f"## Complete Original Sensor Data (Preserved)\n\n```\n{source.data}\n```",
        ]
    blocks += [
        "---",
        "## Verification & Authenticity\n\n"
        "**Blockchain Network**: Story Protocol\n"
        "**Verification**: All data is cryptographically verified on-chain\n"
        "**Provenance**: Complete chain of custody from sensor to derivative\n"
        "**Immutability**: Data cannot be altered once registered\n"
        "**Transparency**: All metadata and lineage publicly auditable",
        "## Usage Rights\n\n"
        "This derivative IP asset can be licensed for:\n"
        "- Commercial agricultural applications\n"
        "- Research and academic purposes\n"
        "- Machine learning model training\n"
        "- Data analytics and aggregation\n"
        "- Integration into farm management systems\n"
        "- Climate modeling and environmental studies\n\n"
        "All licensing respects the terms of the parent IP asset.",
    ]
    return "\n\n".join(blocks)


def _trait(trait_type: str, value: Any) -> Dict[str, Any]:
    return {"trait_type": trait_type, "value": value}


def derivative_nft_attributes(source: SensorDataSource, context: SynthesisContext) -> List[Dict[str, Any]]:
    lineage = context.lineage
    platform = source.source.upper() if source.source else "IoT Network"

    attributes = [
        _trait("Asset Classification", "Derivative IP Asset"),
        _trait("Content Type", "AI-Generated Research Paper"),
        _trait("Sensor Type", sensor_type_display_name(source.type)),
        _trait("Original Sensor Type Code", source.type),
        _trait("Geographic Location", context.location),
        _trait("Location", context.location),
        _trait("Data Collection Date", format_timestamp(source.timestamp)),
        _trait("Data Collection Timestamp", source.timestamp),
        _trait("Sensor Health Status", source.sensor_health),
        _trait("Sensor Health", source.sensor_health),
        _trait("Data Source Platform", platform),
        _trait("Documentation Format", "Academic Research Paper"),
        _trait("Parent IP Reference", lineage.parent_ip_id),
        _trait("Parent IP Short", shorten_id(lineage.parent_ip_id)),
        _trait("Parent License Terms ID", lineage.parent_license_terms_id),
        _trait("Analysis Features", "Statistical Analysis, Pattern Recognition, Agricultural Insights"),
        _trait("AI Processing", "Natural Language Generation, Data Interpretation"),
        _trait("Data Format", "Structured JSON with Research Documentation"),
        _trait("Data Preservation", "100% - All Parent Data Retained"),
        _trait("Blockchain Network", "Story Protocol"),
        _trait("Original Data Title", source.title),
    ]

    if context.creator_name:
        attributes.append(_trait("Derivative Creator Name", context.creator_name))
    if context.creator_address:
        attributes.append(_trait("Derivative Creator Address", context.creator_address))
    if lineage.parent_creator_address:
        attributes.append(_trait("Original Data Creator", lineage.parent_creator_address))
    if context.registration_date:
        attributes.append(_trait("Derivative Registration Date", format_timestamp(context.registration_date)))
        attributes.append(_trait("Derivative Registration Timestamp", context.registration_date))
    if source.data:
        attributes.append(_trait("Data Insights", extract_data_insights(source.data, source.type)))
        attributes.append(_trait("Raw Data Length", f"{len(source.data)} characters"))
        attributes.append(_trait("Data Completeness", "100% Complete"))

    return attributes


def validate_source(source: SensorDataSource) -> List[Tuple[str, str]]:
    """Return (field, problem) pairs for the sensor fields every registration needs."""
    problems = []
    if is_blank(source.title):
        problems.append(("title", "Original title is required"))
    if is_blank(source.type):
        problems.append(("type", "Sensor type is required"))
    if is_blank(source.timestamp):
        problems.append(("timestamp", "Timestamp is required"))
    else:
        try:
            parse_timestamp(source.timestamp)
        except ValueError:
            problems.append(("timestamp", "Invalid timestamp format"))
    if is_blank(source.sensor_health):
        problems.append(("sensor_health", "Sensor health is required"))
    return problems


def validate_derivative_params(source: SensorDataSource, context: SynthesisContext) -> List[str]:
    """Return the list of problems with the inputs of a derivative synthesis."""
    errors = [message for _, message in validate_source(source)]
    if is_blank(context.location):
        errors.append("Location is required")
    if context.lineage is None or is_blank(context.lineage.parent_ip_id):
        errors.append("Parent IP ID is required")
    return errors


def metadata_summary(ip_doc: Dict[str, Any], nft_doc: Dict[str, Any]) -> Dict[str, Any]:
    """Compact description of synthesized documents, for logging."""
    attributes = nft_doc.get("attributes", [])
    return {
        "title": ip_doc.get("title"),
        "description_length": len(ip_doc.get("description", "")),
        "description_preview": ip_doc.get("description", "")[:150].replace("\n", " "),
        "nft_name": nft_doc.get("name"),
        "nft_description_length": len(nft_doc.get("description", "")),
        "attribute_count": len(attributes),
        "key_attributes": {
            a["trait_type"]: str(a["value"])[:50] for a in attributes[:8]
        },
    }


class MetadataSynthesizer:
    """Builds the documents an IP asset registration needs."""

    def knowledge_filename(self, source: SensorDataSource, context: SynthesisContext) -> str:
        if context.kind == RegistrationKind.DERIVATIVE:
            return f"{source.type}-{context.location}-derivative-paper.json"
        return f"{source.type}-{context.location}-character.json"

    def build_knowledge(self, source: SensorDataSource, context: SynthesisContext) -> Dict[str, Any]:
        """Knowledge artifact: a character file for originals, a research paper for derivatives."""
        character = build_character_file(source, context.location)
        if context.kind != RegistrationKind.DERIVATIVE:
            return character
        return build_research_paper(
            source,
            context.location,
            ip_id=context.lineage.parent_ip_id,
            creators=[self._creator(context)],
            character_file=character,
        )

    def build_asset_metadata(self, source: SensorDataSource,
                             context: SynthesisContext) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
        """
        Build the asset metadata, token metadata and knowledge documents.

        context.knowledge and context.image, when set, are referenced by url
        and digest; they were hashed over their uploaded bytes beforehand.
        """
        if context.kind == RegistrationKind.DERIVATIVE and context.lineage is None:
            raise ValueError("Derivative synthesis requires parent lineage")
        knowledge = self.build_knowledge(source, context)

        if context.kind == RegistrationKind.DERIVATIVE:
            title = derivative_title(source.title, source.type, context.location)
            description = derivative_description(source, context)
            nft_doc = {
                "name": title,
                "description": derivative_nft_description(source, context),
                "attributes": derivative_nft_attributes(source, context),
            }
        else:
            title = source.title
            description = f"{context.location} - {source.type} sensor data: {source.data}"
            nft_doc = {
                "name": source.title,
                "description": (f"Agricultural IoT Sensor Data - {source.type} from {context.location}. "
                                "This NFT represents ownership of the IP Asset for this sensor data."),
                "attributes": [
                    _trait("Sensor Type", source.type),
                    _trait("Location", context.location),
                    _trait("Sensor Health", source.sensor_health),
                    _trait("Timestamp", source.timestamp),
                    _trait("Data Source", "Agricultural IoT Network"),
                ],
            }

        ip_doc = {
            "title": title,
            "description": description,
            "createdAt": timestamp_millis(source.timestamp),
            "creators": [self._creator(context)],
        }
        if context.lineage is not None:
            ip_doc["parentIpId"] = context.lineage.parent_ip_id
            ip_doc["parentLicenseTermsId"] = context.lineage.parent_license_terms_id
            if context.lineage.parent_creator_address:
                ip_doc["parentCreatorAddress"] = context.lineage.parent_creator_address

        image_url = self._image_url(source, context)
        if image_url:
            ip_doc["image"] = image_url
            ip_doc["mediaUrl"] = image_url
            ip_doc["mediaType"] = IMAGE_MEDIA_TYPE
            nft_doc["image"] = image_url
            if context.image is not None:
                ip_doc["imageHash"] = context.image.hash
                ip_doc["mediaHash"] = context.image.hash

        if context.knowledge is not None:
            ip_doc["aiMetadata"] = {
                "characterFileUrl": context.knowledge.url,
                "characterFileHash": context.knowledge.hash,
            }

        logger.info("Asset metadata synthesized", kind=context.kind, **metadata_summary(ip_doc, nft_doc))
        return ip_doc, nft_doc, knowledge

    @staticmethod
    def _creator(context: SynthesisContext) -> Dict[str, Any]:
        return {
            "name": context.creator_name,
            "address": context.creator_address,
            "contributionPercent": 100,
        }

    @staticmethod
    def _image_url(source: SensorDataSource, context: SynthesisContext) -> Optional[str]:
        if context.image is not None:
            return context.image.url
        if source.image_hash:
            return gateway_url(f"ipfs://{source.image_hash}")
        return None
