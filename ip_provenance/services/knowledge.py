"""
Knowledge artifacts describing a sensor dataset.

Originals carry an agent character file, derivatives carry a structured
research paper that embeds the same character file. Both are pure functions
of the source record: no network access, no wall-clock time and no random
identifiers, so the same record always yields the same bytes.
"""

import json
import structlog
from typing import Any, Dict, List, Optional

from ip_provenance.core.hashing import hash_string
from ip_provenance.core.utils import explorer_ip_url, format_timestamp, parse_timestamp
from ip_provenance.models.asset import SensorDataSource

logger = structlog.get_logger()

__all__ = [
    "CHARACTER_PROFILES",
    "build_knowledge_content",
    "build_character_file",
    "build_research_paper",
    "export_json",
    "export_markdown",
]

# Per sensor type agent profile. Strings may reference {location} and {health}.
CHARACTER_PROFILES: Dict[str, Dict[str, Any]] = {
    "moisture": {
        "name": "SoilMoistureInterpreter",
        "knowledge_slug": "moisture",
        "bio": [
            "Interprets soil moisture readings and converts them into clear insights.",
            "Analyzes hourly moisture variations, depth conditions, and crop impact.",
            "Focuses on neutral, precise summaries without emotional tone.",
        ],
        "lore": [
            "Designed to work with CSV-based soil moisture datasets.",
            "Understands correlations between rainfall spikes and moisture values.",
            "Uses depth and percentage patterns to estimate soil stability.",
            "Optimized for agricultural monitoring workflows.",
            "Currently monitoring soil conditions in {location}.",
        ],
        "replies": [
            ("The soil shows moderate moisture with variations throughout the monitoring period. "
             "Depth measurements indicate conditions suitable for crop growth."),
            ("What do the moisture levels indicate?",
             "Moisture readings show patterns consistent with normal field conditions. "
             "Variations align with expected diurnal cycles and irrigation patterns."),
        ],
        "post_examples": [
            "Soil moisture shows stable trends across monitoring depth.",
            "{location} moisture data indicates balanced field conditions.",
            "Depth measurements reveal consistent saturation patterns.",
        ],
        "adjectives": ["neutral", "data-focused", "precise", "analytical"],
        "topics": [
            "soil moisture trends",
            "crop impact",
            "rainfall correlation",
            "agricultural monitoring",
            "depth analysis",
        ],
        "style": {
            "all": [
                "Use concise and factual statements.",
                "Avoid emotional expressions.",
                "Focus on describing patterns and correlations.",
                "Never provide farming advice; only observations.",
            ],
            "chat": ["Explain readings in a structured manner with time-based clarity."],
            "post": ["Summaries should be short and purely informational."],
        },
    },
    "rainfall": {
        "name": "RainfallInterpreter",
        "knowledge_slug": "rainfall",
        "bio": [
            "Processes rainfall event data and provides clear, structured summaries.",
            "Interprets duration, intensity, transitions, and measurement sources.",
            "Always neutral and precise.",
        ],
        "lore": [
            "Works with CSV rainfall logs including start/end times and intensity shifts.",
            "Understands phase transitions like steady, heavy, and drizzle.",
            "Optimized for weather-event reconstruction.",
            "Monitoring precipitation patterns in {location}.",
        ],
        "replies": [
            ("Rainfall event shows distinct phases with varying intensity levels. "
             "Duration and distribution patterns indicate typical precipitation behavior for the region."),
            ("What was the rainfall pattern?",
             "The event demonstrates clear segmentation between different intensity phases, "
             "with measurable transitions throughout the precipitation cycle."),
        ],
        "post_examples": [
            "Rainfall event shows clear intensity shift between phases.",
            "{location} precipitation analysis indicates multi-stage cycle.",
            "Duration measurements reveal structured rainfall progression.",
        ],
        "adjectives": ["structured", "neutral", "meteorological", "precise"],
        "topics": [
            "rainfall intensity",
            "event segmentation",
            "precipitation analysis",
            "duration tracking",
            "weather patterns",
        ],
        "style": {
            "all": [
                "Provide factual weather-event interpretations.",
                "Avoid speculation about damage or flooding.",
                "Keep explanations objective and time-segmented.",
            ],
            "chat": ["Prefer clear segmentation of rainfall phases."],
            "post": ["Use crisp weather-focused terminology."],
        },
    },
    "sunlight": {
        "name": "SunlightInterpreter",
        "knowledge_slug": "sunlight",
        "bio": [
            "Analyzes sunlight intensity data across morning, noon, and evening cycles.",
            "Summarizes peak hours, shading effects, and sensor-based lux readings.",
            "Maintains a neutral and technical tone.",
        ],
        "lore": [
            "Built to interpret CSV sunlight datasets with time-split values.",
            "Can identify shading anomalies and intensity scoring.",
            "Useful for agricultural light-condition tracking.",
            "Tracking solar radiation patterns in {location}.",
        ],
        "replies": [
            ("Sunlight intensity follows expected diurnal patterns with peak values during midday hours. "
             "Measurements indicate optimal light exposure for photosynthetic activity."),
            ("How does the light intensity vary?",
             "Light readings demonstrate typical morning rise, noon peak, and evening decline. "
             "Any shading interruptions appear minimal in their overall impact."),
        ],
        "post_examples": [
            "Sunlight intensity shows strong midday dominance with clear diurnal curve.",
            "{location} lux readings follow expected daily light distribution.",
            "Peak hour analysis reveals optimal solar exposure periods.",
        ],
        "adjectives": ["analytical", "time-aware", "technical", "neutral"],
        "topics": [
            "light cycles",
            "lux readings",
            "shading analysis",
            "peak hour detection",
            "solar radiation",
        ],
        "style": {
            "all": [
                "Always refer to time-based light distribution.",
                "Avoid subjective observations.",
                "Use precise lux terminology.",
            ],
            "chat": ["Focus on summarizing morning-noon-evening intensity transitions."],
            "post": ["Keep messages short and scientific."],
        },
    },
    "temperature": {
        "name": "TempHumidityInterpreter",
        "knowledge_slug": "temperature",
        "bio": [
            "Interprets temperature and humidity cycles throughout the day.",
            "Summarizes heat index, dew point, and stability conditions.",
            "Always uses neutral scientific language.",
        ],
        "lore": [
            "Processes structured datasets containing time-tagged temp/humidity readings.",
            "Recognizes daily warming/cooling cycles.",
            "Understands combined metrics like heat index and dew point.",
            "Monitoring atmospheric conditions in {location}.",
        ],
        "replies": [
            ("The readings show typical diurnal temperature variation with corresponding humidity changes. "
             "Combined metrics indicate stable atmospheric conditions suitable for agricultural activities."),
            ("What do the temperature and humidity values indicate?",
             "Temperature patterns follow expected daily cycles with humidity showing inverse correlation "
             "during peak heat hours. Heat index and dew point remain within normal ranges."),
        ],
        "post_examples": [
            "Temperature shows midday peak with corresponding humidity adjustment.",
            "{location} atmospheric data reflects stable climate conditions.",
            "Dew point and heat index measurements indicate balanced environment.",
        ],
        "adjectives": ["meteorological", "neutral", "structured", "data-driven"],
        "topics": [
            "temperature cycles",
            "relative humidity",
            "heat index",
            "dew point",
            "atmospheric stability",
        ],
        "style": {
            "all": [
                "Use balanced, factual interpretations.",
                "Avoid predictions or recommendations.",
                "Stay strictly descriptive.",
            ],
            "chat": ["Organize observations by time of day."],
            "post": ["Keep summaries concise and climate-focused."],
        },
    },
    "growth": {
        "name": "CropGrowthInterpreter",
        "knowledge_slug": "growth",
        "bio": [
            "Analyzes crop growth patterns and development stages.",
            "Interprets visual observations and measurement data.",
            "Provides neutral, data-focused growth assessments.",
        ],
        "lore": [
            "Processes crop monitoring data including height, health indicators, and development stages.",
            "Understands phenological progression and growth rate patterns.",
            "Optimized for agricultural tracking workflows.",
            "Monitoring crop development in {location}.",
        ],
        "replies": [
            ("Growth observations indicate normal developmental progression. "
             "Measurements align with expected phenological stages for the crop type and growing conditions."),
            ("What does the growth data show?",
             "The data reflects steady growth patterns consistent with optimal environmental conditions. "
             "Visual indicators and measurements suggest healthy crop development."),
        ],
        "post_examples": [
            "Crop growth measurements show consistent development trajectory.",
            "{location} monitoring reveals healthy growth patterns.",
            "Visual assessment data indicates normal phenological progression.",
        ],
        "adjectives": ["observational", "developmental", "analytical", "neutral"],
        "topics": [
            "crop growth stages",
            "phenological development",
            "visual assessment",
            "growth rate analysis",
            "agricultural monitoring",
        ],
        "style": {
            "all": [
                "Focus on observable growth patterns.",
                "Avoid speculative statements about yield.",
                "Use developmentally appropriate terminology.",
            ],
            "chat": ["Describe growth stages and progression clearly."],
            "post": ["Keep growth summaries factual and stage-focused."],
        },
    },
    "general": {
        "name": "AgricultureDataInterpreter",
        "knowledge_slug": "general",
        "bio": [
            "Interprets various agricultural sensor data and provides clear insights.",
            "Analyzes patterns and conditions across different monitoring systems.",
            "Maintains neutral, technical communication style.",
        ],
        "lore": [
            "Designed to process diverse agricultural monitoring datasets.",
            "Understands relationships between environmental factors and crop conditions.",
            "Deployed in {location} for comprehensive agricultural monitoring.",
            "Sensor health status: {health}.",
        ],
        "replies": [
            ("The monitoring data reflects current field conditions and provides baseline "
             "measurements for agricultural analysis."),
        ],
        "post_examples": [
            "Agricultural monitoring data from {location} available for analysis.",
            "Field condition measurements show stable patterns.",
            "Sensor readings provide comprehensive environmental overview.",
        ],
        "adjectives": ["comprehensive", "neutral", "data-driven", "analytical"],
        "topics": [
            "agricultural monitoring",
            "environmental data",
            "field conditions",
            "sensor networks",
        ],
        "style": {
            "all": [
                "Provide clear, factual data interpretations.",
                "Use technical but understandable language.",
                "Focus on observable patterns and measurements.",
            ],
            "chat": ["Organize information by data type and temporal sequence."],
            "post": ["Keep updates concise and informative."],
        },
    },
}

PAPER_TITLES = {
    "temperature": "Temperature and Humidity Monitoring",
    "moisture": "Soil Moisture Analysis",
    "rainfall": "Precipitation Pattern Analysis",
    "sunlight": "Solar Radiation Intensity Study",
    "growth": "Crop Growth Development Monitoring",
    "general": "Agricultural Sensor Data Analysis",
}

BASE_KEYWORDS = [
    "Internet of Things",
    "Agricultural Monitoring",
    "Blockchain Technology",
    "Story Protocol",
    "Intellectual Property",
    "Smart Farming",
    "Precision Agriculture",
    "AI-Powered Analysis",
]

TYPE_KEYWORDS = {
    "temperature": ["Temperature Monitoring", "Humidity Sensing", "Climate Analysis"],
    "moisture": ["Soil Moisture", "Irrigation Management", "Water Conservation"],
    "rainfall": ["Precipitation Measurement", "Weather Patterns", "Rainfall Analysis"],
    "sunlight": ["Solar Radiation", "Light Intensity", "Photosynthetically Active Radiation"],
    "growth": ["Crop Development", "Phenological Stages", "Growth Monitoring"],
    "general": ["Sensor Networks", "Data Collection", "Environmental Monitoring"],
}


def build_knowledge_content(source: SensorDataSource, location: str) -> str:
    """Plain-text knowledge entry embedded in the character file."""
    lines = [
        f"Sensor Type: {source.type}",
        f"Title: {source.title}",
        f"Location: {location}",
        f"Data: {source.data}",
        f"Timestamp: {source.timestamp}",
        f"Sensor Health: {source.sensor_health}",
    ]
    if source.image_hash:
        lines.append(f"Image Hash: {source.image_hash}")
    lines.append("")
    lines.append("This sensor provides critical agricultural data for monitoring "
                 "and optimization of farming operations.")
    return "\n".join(lines)


def build_character_file(source: SensorDataSource, location: str) -> Dict[str, Any]:
    """
    Build the agent character file for a sensor record.

    The profile is picked by sensor type; unknown types get the general
    agriculture interpreter.
    """
    profile = CHARACTER_PROFILES.get(source.type, CHARACTER_PROFILES["general"])
    values = {"location": location, "health": source.sensor_health}
    name = profile["name"]

    message_examples = []
    for index, reply in enumerate(profile["replies"]):
        if index == 0:
            prompt, text = f"Interpret: {location},{source.data}", reply
        else:
            prompt, text = reply
        answer = {"text": text}
        if index > 0:
            answer["action"] = "CONTINUE"
        message_examples.append([
            {"user": "{{user1}}", "content": {"text": prompt}},
            {"user": name, "content": answer},
        ])

    content = build_knowledge_content(source, location)
    # First 32 hex chars of the content digest stand in for a random id
    knowledge_id = hash_string(content)[2:34]

    return {
        "name": name,
        "bio": list(profile["bio"]),
        "lore": [line.format(**values) for line in profile["lore"]],
        "messageExamples": message_examples,
        "postExamples": [line.format(**values) for line in profile["post_examples"]],
        "adjectives": list(profile["adjectives"]),
        "topics": list(profile["topics"]),
        "knowledge": [{
            "id": knowledge_id,
            "path": f"knowledge/{profile['knowledge_slug']}-{location}.txt",
            "content": content,
        }],
        "style": {key: list(lines) for key, lines in profile["style"].items()},
    }


def _bullets(items: List[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def _section(heading: str, content: str, subsections: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    section = {"heading": heading, "content": content}
    if subsections is not None:
        section["subsections"] = subsections
    return section


def build_research_paper(source: SensorDataSource, location: str, ip_id: str,
                         creators: List[Dict[str, Any]],
                         character_file: Optional[Dict[str, Any]] = None,
                         explorer_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the research paper documenting a derivative of a registered dataset.

    Args:
        source: Parent sensor data record
        location: Collection location
        ip_id: Parent IP asset id the paper documents
        creators: Creator entries (name, address, contributionPercent)
        character_file: Character file to analyze and embed, built from the
            source when omitted
        explorer_url: Explorer page of the parent asset

    Returns:
        Paper document with metadata, sections and appendices
    """
    character = character_file if character_file is not None else build_character_file(source, location)
    sensor_type = source.type
    health = source.sensor_health
    revenue_share = source.revenue_share if source.revenue_share is not None else 10
    minting_fee = source.minting_fee if source.minting_fee is not None else "0.01"
    platform = (source.source or "gmail").upper()
    author = creators[0]["name"] if creators else "Registered Creator"
    year = parse_timestamp(source.timestamp).year
    adjectives = ", ".join(character.get("adjectives") or []) or "analytical, data-focused"

    metadata = {
        "title": f"{PAPER_TITLES.get(sensor_type, 'Agricultural Data Analysis')} in {location}: An IoT-Based Approach",
        "authors": [c["name"] for c in creators] or ["Research Team"],
        "abstract": (
            f"This research paper presents a comprehensive analysis of {sensor_type} sensor data collected from {location}. "
            f"The data was acquired through an Internet of Things (IoT) agricultural monitoring system on "
            f"{format_timestamp(source.timestamp, with_time=False)}. "
            "This study utilizes blockchain-based intellectual property protection through Story Protocol, "
            "ensuring data provenance and authenticity. "
            "The sensor readings provide critical insights into agricultural conditions, enabling data-driven "
            "decision-making for precision farming. "
            "An AI-powered character interpretation system has been deployed to facilitate natural language "
            "interaction with the collected data. "
            "The findings contribute to the growing body of knowledge in smart agriculture and demonstrate the "
            "integration of IoT, blockchain, and artificial intelligence for sustainable farming practices."
        ),
        "keywords": BASE_KEYWORDS + TYPE_KEYWORDS.get(sensor_type, TYPE_KEYWORDS["general"]),
        "ipAssetId": ip_id,
        "storyExplorerUrl": explorer_url or source.story_explorer_url or explorer_ip_url(ip_id),
    }

    introduction = _section(
        "1. Introduction",
        "The integration of Internet of Things (IoT) technology in agriculture has revolutionized modern farming "
        "practices, enabling real-time monitoring and data-driven decision-making. This paper presents an analysis "
        f"of {sensor_type} sensor data collected from {location}, demonstrating the practical application of "
        "IoT-based agricultural monitoring systems.",
        [
            _section("1.1 Background",
                     "Agricultural productivity increasingly depends on precise environmental monitoring and timely "
                     "interventions. Traditional farming methods often rely on periodic manual observations, which may "
                     "miss critical changes in field conditions. IoT-based sensor networks provide continuous, automated "
                     "data collection, enabling farmers to respond rapidly to changing conditions."),
            _section("1.2 Blockchain Integration",
                     "This research incorporates blockchain technology through Story Protocol to ensure data "
                     "authenticity and establish clear intellectual property rights over the collected sensor data. "
                     f"The IP Asset ID ({ip_id}) serves as an immutable record of data ownership and provenance, "
                     "creating a transparent chain of custody for agricultural data."),
            _section("1.3 Research Objectives",
                     f"The primary objectives of this study are: (1) to collect and analyze {sensor_type} sensor data "
                     f"from {location}, (2) to demonstrate blockchain-based IP protection for agricultural data, "
                     "(3) to deploy an AI-powered interpretation system for natural language data interaction, and "
                     "(4) to contribute empirical data to the smart agriculture knowledge base."),
        ],
    )

    data_source = _section(
        "2. Data Source and Collection",
        "This section describes the sensor infrastructure, data collection methodology, and quality assurance procedures.",
        [
            _section("2.1 Sensor Specifications",
                     f"Sensor Type: {sensor_type}\n"
                     f"Sensor Health Status: {health}\n"
                     f"Data Source: {platform} Platform\n"
                     f"Collection Timestamp: {source.timestamp}\n"
                     f"Spatial Location: {location}"),
            _section("2.2 Data Transmission",
                     f"Sensor readings are transmitted automatically via the {platform.lower()} platform, which provides "
                     "reliable IoT connectivity and data routing. The system ensures data integrity through checksum "
                     "verification and duplicate detection."),
            _section("2.3 Blockchain Registration",
                     "Upon collection, the sensor data was registered as an intellectual property asset on Story "
                     "Protocol blockchain. This creates an immutable record linking the physical sensor readings to "
                     "their digital representation.\n\n"
                     f"IP Asset ID: {ip_id}\n"
                     f"Transaction Hash: {source.transaction_hash or 'Available in blockchain records'}\n"
                     f"Story Explorer: {source.story_explorer_url or 'Available via Story Protocol Explorer'}"),
            _section("2.4 Data Quality",
                     f"The sensor health status ({health}) indicates the operational condition of the monitoring "
                     "equipment. Regular calibration and maintenance ensure data accuracy and reliability. Any "
                     "anomalous readings are flagged for manual review."),
        ],
    )

    methodology = _section(
        "3. Methodology",
        "This study employs a multi-layered approach combining IoT data collection, blockchain registration, "
        "and AI-powered analysis.",
        [
            _section("3.1 Data Collection Protocol",
                     "Sensor readings are collected at regular intervals and transmitted to a central database. "
                     "Each reading includes:\n" + _bullets([
                         "Temporal timestamp with precision to seconds",
                         f"Spatial coordinates ({location})",
                         "Sensor health diagnostics",
                         "Primary measurement values",
                         "Environmental context where applicable",
                     ])),
            _section("3.2 Blockchain Integration",
                     "The Story Protocol integration involves several steps:\n"
                     "1. Character File Generation: An AI character file is created to enable natural language "
                     "interaction with the data\n"
                     "2. Metadata Preparation: Comprehensive metadata is compiled including creator information and "
                     "data provenance\n"
                     "3. IPFS Upload: Metadata and character files are uploaded to InterPlanetary File System (IPFS)\n"
                     "4. IP Registration: The data is registered as an IP Asset with commercial license terms\n"
                     f"5. License Configuration: Revenue sharing ({revenue_share}%) and minting fees "
                     f"({minting_fee} IP tokens) are set"),
            _section("3.3 AI Character System",
                     f"An AI character named \"{character['name']}\" was created to interpret and explain the sensor "
                     f"data. The character is designed with specific traits: {adjectives}. This enables users to "
                     "query the data using natural language rather than technical database queries."),
            _section("3.4 Data Analysis Framework",
                     "Analysis focuses on:\n" + _bullets([
                         "Temporal pattern identification",
                         "Statistical characterization of measurements",
                         "Correlation with known agricultural principles",
                         "Anomaly detection and quality control",
                         "Contextual interpretation relative to growing conditions",
                     ])),
        ],
    )

    results = _section(
        "4. Results and Observations",
        "This section presents the collected sensor data and key observations from the monitoring period.",
        [
            # Full payload, nothing trimmed; Appendix A repeats it verbatim
            _section("4.1 Primary Measurements", f"The sensor recorded the following data:\n\n{source.data}"),
            _section("4.2 Statistical Summary",
                     f"Collection Period: {source.timestamp}\n"
                     f"Sensor Location: {location}\n"
                     f"Sensor Health: {health}\n"
                     f"Data Completeness: {'Complete' if health == '100%' else f'Partial with {health} reliability'}\n"
                     "Visual Documentation: "
                     + (f"Available (IPFS Hash: {source.image_hash})" if source.image_hash else "Not captured")),
            _section("4.3 Blockchain Verification",
                     "The data has been successfully registered on Story Protocol blockchain:\n\n"
                     f"IP Asset ID: {ip_id}\n"
                     f"Creator: {author}\n"
                     f"Creator Address: {source.creator_address or 'On-chain'}\n"
                     "Registration Date: Recorded on blockchain\n"
                     f"Metadata IPFS: {source.metadata_url or 'Available via IPFS'}\n\n"
                     "This blockchain registration ensures:\n" + _bullets([
                         "Immutable data provenance",
                         "Verifiable ownership",
                         "Automated royalty distribution",
                         "Commercial licensing capabilities",
                     ])),
            _section("4.4 Data Interpretation",
                     f"The collected measurements provide insights into {sensor_type} conditions in {location}. "
                     f"The sensor health indicator ({health}) confirms reliable data quality throughout the collection "
                     "period. These readings can be used to inform agricultural management decisions and contribute "
                     "to historical trend analysis."),
        ],
    )

    discussion = _section(
        "5. Discussion",
        "This section interprets the findings in the context of precision agriculture and blockchain technology integration.",
        [
            _section("5.1 Agricultural Implications",
                     f"The {sensor_type} data from {location} provides actionable intelligence for farm management. "
                     "By monitoring these parameters continuously, farmers can optimize resource allocation, predict "
                     "potential issues, and implement timely interventions. The data quality, indicated by the "
                     f"{health} sensor health status, ensures reliability for decision-making processes."),
            _section("5.2 Blockchain Innovation",
                     "Registering agricultural sensor data as blockchain-based IP assets represents a paradigm shift "
                     "in data ownership and monetization. This approach enables:\n" + _bullets([
                         "Transparent data provenance tracking",
                         "Fair compensation for data creators",
                         f"Standardized licensing frameworks ({revenue_share}% revenue share)",
                         "Reduced data silos through trusted sharing mechanisms",
                     ]) + "\n\n"
                     f"The commercial license terms (minting fee: {minting_fee} IP tokens) create economic incentives "
                     "for high-quality data collection while maintaining accessibility for research and agricultural "
                     "applications."),
            _section("5.3 AI-Enhanced Accessibility",
                     f"The AI character \"{character['name']}\" democratizes access to technical sensor data. Farmers "
                     "and researchers can query the data using natural language, asking questions like \"What were the "
                     "conditions during peak hours?\" instead of writing database queries. The character's design "
                     f"principles ({adjectives}) ensure that interpretations remain factual and useful."),
            _section("5.4 Scalability and Future Work",
                     "This proof-of-concept demonstrates the viability of blockchain-based IP protection for "
                     "agricultural IoT data. Future work should explore:\n" + _bullets([
                         "Multi-sensor data fusion across different locations",
                         "Predictive modeling using historical blockchain-verified datasets",
                         "Standardized metadata schemas for agricultural IP assets",
                         "Integration with existing farm management systems",
                         "Development of data marketplaces for agricultural intelligence",
                     ])),
        ],
    )

    knowledge_files = [f"{k['path']} (ID: {k['id']})" for k in character.get("knowledge", [])]
    post_examples = character.get("postExamples") or []
    character_analysis = _section(
        "6. AI Character Analysis System",
        "This section describes the AI-powered interpretation system designed to make sensor data accessible "
        "through natural language.",
        [
            _section("6.1 Character Profile",
                     f"Name: {character['name']}\n\n"
                     f"Bio:\n{_bullets(character.get('bio') or [])}\n\n"
                     f"Core Characteristics: {adjectives}"),
            _section("6.2 Knowledge Base",
                     "The character is equipped with specialized knowledge about:\n"
                     f"{_bullets(character.get('topics') or [])}\n\n"
                     "Knowledge files are stored on IPFS and include:\n"
                     f"{_bullets(knowledge_files)}"),
            _section("6.3 Interaction Style",
                     "The character follows specific communication guidelines:\n\n"
                     f"General Style:\n{_bullets(character.get('style', {}).get('all') or [])}\n\n"
                     "This ensures that all interpretations remain grounded in the actual sensor data without "
                     "introducing bias or speculation."),
            _section("6.4 Example Interactions",
                     "Sample interpretations the character might provide:\n\n"
                     + "\n".join(f"• \"{example}\"" for example in post_examples)
                     if post_examples else
                     "The character provides factual interpretations of sensor readings, helping users understand "
                     "patterns and anomalies in the collected data."),
        ],
    )

    conclusion = _section(
        "7. Conclusion",
        "This research demonstrates the successful integration of Internet of Things sensor technology, "
        "blockchain-based intellectual property protection, and artificial intelligence for agricultural data "
        f"management. The {sensor_type} data collected from {location} exemplifies how modern technology can "
        "enhance traditional farming practices.\n\n"
        "Key contributions include:\n" + _bullets([
            "Successful deployment of IoT sensors for continuous agricultural monitoring",
            "Implementation of blockchain-based IP protection ensuring data provenance and ownership",
            "Development of an AI character system for natural language data interaction",
            "Creation of a framework for agricultural data monetization and sharing",
        ]) + "\n\n"
        f"The Story Protocol registration (IP Asset ID: {ip_id}) establishes a precedent for treating agricultural "
        "sensor data as valuable intellectual property deserving of protection and fair compensation. The commercial "
        "licensing terms enable data creators to benefit from their contributions while maintaining data "
        "accessibility for research and agricultural applications.",
        [],
    )

    references = [
        'Story Protocol Documentation. (2024). "IP Asset Management on Blockchain." Available at: https://docs.story.foundation',
        'InterPlanetary File System (IPFS). (2024). "Content Addressing and Distributed Storage." Protocol Labs.',
        f'Sensor Data Registration. ({year}). "{source.title}." Story Protocol IP Asset {ip_id}.',
        'Agricultural IoT Networks. (2024). "Real-time Monitoring for Precision Farming." Journal of Smart Agriculture.',
        'Blockchain Technology in Agriculture. (2024). "Ensuring Data Provenance and Transparency." '
        'Agricultural Technology Review.',
        f'{author}. ({year}). "{sensor_type} Monitoring in {location}." Registered on Story Protocol.',
        'AI-Powered Data Interpretation. (2024). "Natural Language Interfaces for Technical Data." AI in Agriculture Journal.',
    ]

    paper = {
        "metadata": metadata,
        "sections": {
            "introduction": introduction,
            "dataSource": data_source,
            "methodology": methodology,
            "results": results,
            "discussion": discussion,
            "aiCharacterAnalysis": character_analysis,
            "conclusion": conclusion,
            "references": references,
        },
        "appendices": {
            "rawData": {
                "sensorType": sensor_type,
                "location": location,
                "timestamp": source.timestamp,
                "sensorHealth": health,
                "data": source.data,
                "imageHash": source.image_hash,
            },
            "characterFile": character,
            "ipfsReferences": {
                "metadataUrl": source.metadata_url or "",
                "imageHash": source.image_hash or "",
            },
        },
    }

    logger.debug("Research paper built", ip_id=ip_id, sensor_type=sensor_type, title=metadata["title"])
    return paper


def export_json(document: Dict[str, Any]) -> str:
    """Pretty-printed JSON text of a knowledge artifact, as uploaded."""
    return json.dumps(document, indent=2, ensure_ascii=False)


def export_markdown(paper: Dict[str, Any]) -> str:
    """Render a research paper as Markdown."""
    meta = paper["metadata"]
    parts = [
        f"# {meta['title']}\n\n",
        f"**Authors:** {', '.join(meta['authors'])}\n\n",
        f"**IP Asset ID:** {meta['ipAssetId']}\n\n",
        f"**Story Explorer:** {meta['storyExplorerUrl']}\n\n",
        "---\n\n",
        f"## Abstract\n\n{meta['abstract']}\n\n",
        f"**Keywords:** {', '.join(meta['keywords'])}\n\n",
        "---\n\n",
    ]

    def render(section: Dict[str, Any], level: int = 2) -> str:
        text = f"{'#' * level} {section['heading']}\n\n{section['content']}\n\n"
        for sub in section.get("subsections") or []:
            text += render(sub, level + 1)
        return text

    sections = paper["sections"]
    for key in ("introduction", "dataSource", "methodology", "results",
                "discussion", "aiCharacterAnalysis", "conclusion"):
        parts.append(render(sections[key]))

    parts.append("## References\n\n")
    for index, ref in enumerate(sections["references"], start=1):
        parts.append(f"{index}. {ref}\n")
    parts.append("\n---\n\n")

    appendices = paper["appendices"]
    parts.append("## Appendix A: Raw Sensor Data\n\n```json\n")
    parts.append(json.dumps(appendices["rawData"], indent=2, ensure_ascii=False))
    parts.append("\n```\n\n")
    if appendices.get("characterFile"):
        parts.append("## Appendix B: AI Character Configuration\n\n```json\n")
        parts.append(json.dumps(appendices["characterFile"], indent=2, ensure_ascii=False))
        parts.append("\n```\n\n")
    refs = appendices["ipfsReferences"]
    parts.append("## Appendix C: IPFS References\n\n")
    parts.append(f"- Metadata URL: {refs['metadataUrl']}\n")
    parts.append(f"- Image Hash: {refs['imageHash']}\n")
    return "".join(parts)
