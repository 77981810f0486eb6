import base64
import json

import pytest

from ip_provenance.core.errors import FetchError, LedgerError
from ip_provenance.core.hashing import hash_bytes
from ip_provenance.services.provenance import DATA_URI_PREFIX, ProvenanceReader, decode_attribute_bag

from conftest import FakeLedger, FakeResponse, FakeSession, IP_ID, WALLET


def data_uri(document):
    return DATA_URI_PREFIX + base64.b64encode(json.dumps(document).encode("utf-8")).decode("ascii")


def test_decode_attribute_bag_accepts_data_uri_and_plain_json():
    document = {"name": "x", "attributes": [{"trait_type": "Owner", "value": WALLET}]}
    assert decode_attribute_bag(data_uri(document)) == document
    assert decode_attribute_bag(json.dumps(document)) == document


def test_decode_attribute_bag_rejects_non_objects():
    with pytest.raises(ValueError):
        decode_attribute_bag("[1, 2]")
    with pytest.raises(ValueError):
        decode_attribute_bag("not json")


def test_read_core_raises_for_unknown_asset():
    with pytest.raises(LedgerError):
        ProvenanceReader(FakeLedger(), session=FakeSession()).read_core(IP_ID)


def test_read_enriched_resolves_documents(core_metadata):
    ledger = FakeLedger()
    ledger.core[IP_ID] = core_metadata
    session = FakeSession({
        "https://ipfs.io/ipfs/QmIp": FakeResponse(200, payload={"title": "Soil Moisture Levels"}),
        "https://ipfs.io/ipfs/QmNft": FakeResponse(200, payload={"name": "Soil Moisture Levels"}),
    })

    enriched = ProvenanceReader(ledger, session=session).read_enriched(IP_ID)

    assert enriched.error is None
    assert enriched.is_supported is True
    assert enriched.ip_metadata_content == {"title": "Soil Moisture Levels"}
    assert enriched.nft_metadata_content == {"name": "Soil Moisture Levels"}
    assert enriched.core_metadata.owner == WALLET


def test_read_enriched_overlays_attribute_bag(core_metadata):
    ledger = FakeLedger()
    ledger.core[IP_ID] = core_metadata
    new_owner = "0x5555555555555555555555555555555555555555"
    ledger.json_strings[IP_ID] = data_uri({"attributes": [
        {"trait_type": "Owner", "value": new_owner},
        {"trait_type": "Registration Date", "value": "1706000000"},
    ]})

    enriched = ProvenanceReader(ledger, session=FakeSession()).read_enriched(IP_ID)

    assert enriched.attributes["Owner"] == new_owner
    assert enriched.core_metadata.owner == new_owner
    assert enriched.core_metadata.registration_date == 1706000000
    assert enriched.core_metadata.metadata_uri == core_metadata.metadata_uri


def test_read_enriched_never_raises():
    enriched = ProvenanceReader(FakeLedger(), session=FakeSession()).read_enriched(IP_ID)
    assert enriched.error
    assert enriched.is_supported is False
    assert enriched.ip_metadata_content is None
    assert enriched.nft_metadata_content is None


def test_fetch_document_errors():
    reader = ProvenanceReader(FakeLedger(), session=FakeSession({
        "https://ipfs.io/ipfs/QmText": FakeResponse(200, content=b"hello"),
        "https://ipfs.io/ipfs/QmList": FakeResponse(200, payload=[1, 2]),
    }))
    with pytest.raises(FetchError):
        reader.fetch_document("ipfs://QmMissing")
    with pytest.raises(FetchError):
        reader.fetch_document("https://ipfs.io/ipfs/QmText")
    with pytest.raises(FetchError):
        reader.fetch_document("https://ipfs.io/ipfs/QmList")


KNOWLEDGE_URL = "https://ipfs.io/ipfs/QmKnowledge"

IP_DOC = {
    "title": "Soil Moisture Levels",
    "description": "Agricultural IoT sensor data",
    "createdAt": "1705341600000",
    "creators": [{"name": "Alice", "address": WALLET, "contributionPercent": 100}],
    "image": "https://ipfs.io/ipfs/QmImage",
    "imageHash": "0x" + "ee" * 32,
    "mediaUrl": "https://ipfs.io/ipfs/QmImage",
    "mediaType": "image/svg+xml",
    "aiMetadata": {"characterFileUrl": KNOWLEDGE_URL, "characterFileHash": "0x" + "ff" * 32},
}


def complete_reader(core_metadata, knowledge=None):
    ledger = FakeLedger()
    ledger.core[IP_ID] = core_metadata
    responses = {
        "https://ipfs.io/ipfs/QmIp": FakeResponse(200, payload=IP_DOC),
        "https://ipfs.io/ipfs/QmNft": FakeResponse(200, payload={"name": "Soil Moisture Levels"}),
    }
    if knowledge is not None:
        responses[KNOWLEDGE_URL] = knowledge
    return ProvenanceReader(ledger, session=FakeSession(responses))


def test_fetch_text_keeps_raw_and_parses_json():
    reader = ProvenanceReader(FakeLedger(), session=FakeSession({
        "https://ipfs.io/ipfs/QmText": FakeResponse(200, content=b"plain notes"),
        "https://ipfs.io/ipfs/QmDoc": FakeResponse(200, payload={"name": "Soil Sage"}),
    }))
    assert reader.fetch_text("ipfs://QmText") == ("plain notes", None)
    raw, parsed = reader.fetch_text("ipfs://QmDoc")
    assert parsed == {"name": "Soil Sage"}
    assert json.loads(raw) == parsed
    with pytest.raises(FetchError):
        reader.fetch_text("ipfs://QmMissing")


def test_read_complete_gathers_documents_and_knowledge(core_metadata):
    reader = complete_reader(core_metadata, FakeResponse(200, payload={"name": "Soil Sage"}))

    data = reader.read_complete(IP_ID)

    assert data.title == "Soil Moisture Levels"
    assert data.owner == WALLET
    assert data.registration_date == "January 15, 2024 at 06:00:00 PM UTC"
    assert data.registered_timestamp == "2024-01-15T18:00:00+00:00"
    assert data.creators[0]["name"] == "Alice"
    assert data.image.cid == "QmImage"
    assert data.image.hash == "0x" + "ee" * 32
    assert data.media.media_type == "image/svg+xml"
    assert data.ip_metadata.parsed == IP_DOC
    assert data.ip_metadata.hash == core_metadata.metadata_hash
    assert json.loads(data.ip_metadata.raw) == IP_DOC
    assert data.knowledge_file.parsed == {"name": "Soil Sage"}
    assert data.knowledge_file.hash == "0x" + "ff" * 32
    assert data.license_info is None and data.dataset_context is None
    assert data.errors == []


def test_read_complete_lists_what_did_not_resolve(core_metadata):
    data = complete_reader(core_metadata).read_complete(IP_ID)

    assert data.knowledge_file.url == KNOWLEDGE_URL
    assert data.knowledge_file.raw is None
    assert len(data.errors) == 1
    assert data.errors[0].startswith("knowledge file:")


def test_read_complete_for_unknown_asset():
    data = ProvenanceReader(FakeLedger(), session=FakeSession()).read_complete(IP_ID)

    assert data.title == "Untitled IP Asset"
    assert data.registration_date == "Not Available"
    assert data.registered_timestamp is None
    assert data.ip_metadata is None
    assert data.errors[0].startswith("core metadata:")


def test_read_complete_carries_index_context(core_metadata):
    license_record = {"license_terms_id": "42", "amount": 2, "minting_fee_paid": "0.02",
                      "minted_at": None, "transaction_hash": "0xtx3"}
    sensor_record = {"id": 12, "title": "Fallback", "type": "moisture", "location": "Nairobi, Kenya",
                     "sensor_health": "96%", "timestamp": "2024-01-15T18:00:00Z",
                     "data": "Moisture: 45.2%", "source": "blynk"}

    data = complete_reader(core_metadata).read_complete(IP_ID, license_record, sensor_record)

    assert data.license_info == {"license_terms_id": "42", "amount": 2, "minting_fee_paid": "0.02"}
    assert data.location == "Nairobi, Kenya"
    assert data.sensor_type == "moisture"
    assert data.dataset_context == {"sensor_data_id": 12, "raw_sensor_data": "Moisture: 45.2%", "source": "blynk"}


def test_verify_integrity(core_metadata):
    ip_bytes, nft_bytes = b'{"title":"x"}', b'{"name":"x"}'
    core = core_metadata.copy(update={
        "metadata_hash": hash_bytes(ip_bytes),
        "nft_metadata_hash": "0x" + "00" * 32,
    })
    ledger = FakeLedger()
    ledger.core[IP_ID] = core
    session = FakeSession({
        "https://ipfs.io/ipfs/QmIp": FakeResponse(200, content=ip_bytes),
        "https://ipfs.io/ipfs/QmNft": FakeResponse(200, content=nft_bytes),
    })

    report = ProvenanceReader(ledger, session=session).verify_integrity(IP_ID)

    assert report.metadata_hash_matches is True
    assert report.nft_metadata_hash_matches is False
    assert report.computed_nft_metadata_hash == hash_bytes(nft_bytes)
    assert report.verified is False


def test_batch_core_metadata_isolates_failures(core_metadata):
    ledger = FakeLedger()
    ledger.core[IP_ID] = core_metadata
    results = ProvenanceReader(ledger, session=FakeSession()).batch_get_core_metadata(
        [IP_ID, "0xUnknown", IP_ID])

    assert list(results) == [IP_ID, "0xUnknown"]
    assert results[IP_ID] == core_metadata
    assert results["0xUnknown"] is None


def test_batch_of_nothing():
    assert ProvenanceReader(FakeLedger(), session=FakeSession()).batch_get_enriched_metadata([]) == {}


def test_display_registration_date(core_metadata):
    assert ProvenanceReader.display_registration_date(None) == "Not Available"
    assert ProvenanceReader.display_registration_date(core_metadata) == "January 15, 2024 at 06:00:00 PM UTC"
