import json

from ip_provenance.services.knowledge import (
    build_character_file, build_knowledge_content, build_research_paper, export_json, export_markdown,
)

from conftest import PARENT_IP_ID

CREATORS = [{"name": "Bob", "address": "0x1111111111111111111111111111111111111111", "contributionPercent": 100}]


def test_character_file_profile_by_sensor_type(moisture_source):
    character = build_character_file(moisture_source, "Nairobi, Kenya")
    assert character["name"]
    assert character["bio"]
    assert all("{location}" not in line for line in character["lore"])
    knowledge = character["knowledge"][0]
    assert knowledge["content"] == build_knowledge_content(moisture_source, "Nairobi, Kenya")
    assert moisture_source.data in knowledge["content"]
    assert len(knowledge["id"]) == 32


def test_character_file_is_deterministic(moisture_source):
    assert build_character_file(moisture_source, "Nairobi, Kenya") == \
        build_character_file(moisture_source, "Nairobi, Kenya")


def test_unknown_sensor_type_uses_general_profile(moisture_source):
    co2 = moisture_source.copy(update={"type": "co2"})
    general = build_character_file(co2, "Nairobi, Kenya")
    assert general["name"] != build_character_file(moisture_source, "Nairobi, Kenya")["name"]


def test_research_paper_structure(moisture_source):
    paper = build_research_paper(moisture_source, "Nairobi, Kenya", PARENT_IP_ID, CREATORS)

    assert paper["metadata"]["authors"] == ["Bob"]
    assert paper["metadata"]["ipAssetId"] == PARENT_IP_ID
    assert "Nairobi, Kenya" in paper["metadata"]["title"]
    for key in ("introduction", "dataSource", "methodology", "results", "discussion",
                "aiCharacterAnalysis", "conclusion", "references"):
        assert key in paper["sections"]
    assert paper["appendices"]["rawData"]["data"] == moisture_source.data
    assert paper["appendices"]["characterFile"]["name"]


def test_exports(moisture_source):
    paper = build_research_paper(moisture_source, "Nairobi, Kenya", PARENT_IP_ID, CREATORS)
    assert json.loads(export_json(paper)) == paper

    markdown = export_markdown(paper)
    assert markdown.startswith(f"# {paper['metadata']['title']}")
    assert "## Appendix A: Raw Sensor Data" in markdown
    assert "**Authors:** Bob" in markdown
