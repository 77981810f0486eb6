import pytest
from fastapi.testclient import TestClient

from ip_provenance import main
from ip_provenance.core.errors import LedgerError
from ip_provenance.services.licensing import LicensingService
from ip_provenance.services.provenance import ProvenanceReader
from ip_provenance.services.registration import RegistrationOrchestrator
from ip_provenance.services.royalty import RoyaltyService

from conftest import FakeIndex, FakeLedger, FakeSession, FakeStorage, IP_ID, PARENT_IP_ID, WALLET

HEADERS = {"X-Wallet-Address": WALLET}

SOURCE = {
    "type": "moisture",
    "title": "Soil Moisture Levels",
    "timestamp": "2024-01-15T18:00:00Z",
    "sensor_health": "96%",
    "data": "Moisture: 45.2%",
}


@pytest.fixture
def fakes():
    return {"storage": FakeStorage(), "ledger": FakeLedger(), "index": FakeIndex()}


@pytest.fixture
def client(fakes):
    overrides = main.app.dependency_overrides
    overrides[main.get_orchestrator] = lambda: RegistrationOrchestrator(
        fakes["storage"], fakes["ledger"], fakes["index"])
    overrides[main.get_licensing_service] = lambda: LicensingService(fakes["ledger"], fakes["index"])
    overrides[main.get_royalty_service] = lambda: RoyaltyService(fakes["ledger"], fakes["index"])
    overrides[main.get_provenance_reader] = lambda: ProvenanceReader(fakes["ledger"], session=FakeSession())
    overrides[main.get_index] = lambda: fakes["index"]
    yield TestClient(main.app)
    overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "IP Provenance API"


def test_register_original(client):
    response = client.post("/ip-assets", headers=HEADERS, json={
        "source": SOURCE, "creator_name": "Alice", "location": "Nairobi, Kenya", "sensor_data_id": 12,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["ip_id"] == IP_ID
    assert body["persisted"] is True
    assert {"trait_type": "Sensor Health", "value": "96%"} in body["nft_metadata"]["attributes"]


def test_register_original_without_wallet(client, fakes):
    response = client.post("/ip-assets", json={"source": SOURCE, "creator_name": "Alice"})
    assert response.status_code == 401
    assert response.json()["error_type"] == "WalletNotConnectedError"
    assert fakes["storage"].calls == []


def test_register_original_with_bad_timestamp(client, fakes):
    source = dict(SOURCE, timestamp="Jan 15 2024")
    response = client.post("/ip-assets", headers=HEADERS, json={"source": source, "creator_name": "Alice"})
    assert response.status_code == 422
    body = response.json()
    assert body["error_type"] == "ValidationError"
    assert body["error"] == "Invalid timestamp format"
    assert fakes["storage"].calls == [] and fakes["ledger"].calls == []


def test_register_derivative_without_sensor_data_id(client, fakes):
    response = client.post("/ip-assets/derivatives", headers=HEADERS, json={
        "source": SOURCE, "creator_name": "Bob", "parent_ip_id": PARENT_IP_ID, "parent_license_terms_id": "42",
    })
    assert response.status_code == 422
    assert response.json()["success"] is False
    assert fakes["storage"].calls == [] and fakes["ledger"].calls == []


def test_register_derivative_ledger_failure(client, fakes):
    fakes["ledger"].fail = LedgerError("execution reverted")
    response = client.post("/ip-assets/derivatives", headers=HEADERS, json={
        "source": SOURCE, "creator_name": "Bob", "parent_ip_id": PARENT_IP_ID,
        "parent_license_terms_id": "42", "sensor_data_id": 12,
    })
    assert response.status_code == 502
    assert response.json()["error"] == "execution reverted"
    assert fakes["index"].records == []


def test_mint_rejects_zero(client, fakes):
    response = client.post("/licenses/mint", headers=HEADERS,
                           json={"ip_id": IP_ID, "license_terms_id": "42", "amount": 0})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["details"] == {"field": "amount"}
    assert fakes["ledger"].calls == []


def test_mint_and_list_licenses(client, fakes):
    response = client.post("/licenses/mint", headers=HEADERS,
                           json={"ip_id": IP_ID, "license_terms_id": "42", "amount": 3, "unit_fee": "0.01"})
    assert response.status_code == 200
    assert response.json()["amount"] == 3
    assert fakes["ledger"].calls[0][1]["amount"] == 3

    licenses = client.get("/licenses", params={"receiver": WALLET.upper().replace("0X", "0x")})
    assert licenses.status_code == 200
    assert len(licenses.json()) == 1


def test_pay_rejects_zero(client, fakes):
    response = client.post("/royalties/pay", headers=HEADERS,
                           json={"payer_ip_id": IP_ID, "receiver_ip_id": PARENT_IP_ID, "amount": "0"})
    assert response.status_code == 422
    assert response.json()["message"] == "Amount must be greater than 0"
    assert fakes["ledger"].calls == []


def test_tip(client, fakes):
    response = client.post("/royalties/tip", headers=HEADERS,
                           json={"receiver_ip_id": PARENT_IP_ID, "amount": "0.5"})
    assert response.status_code == 200
    assert response.json()["direction"] == "direct_support"


def test_claimable_uses_asset_id(client, fakes):
    response = client.get(f"/ip-assets/{IP_ID}/claimable", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["claimer"] == IP_ID
    assert fakes["ledger"].calls[0][1]["claimer"] == IP_ID


def test_claim_ledger_error_maps_to_bad_gateway(client, fakes):
    fakes["ledger"].fail = LedgerError("nothing to claim")
    response = client.post(f"/ip-assets/{IP_ID}/claim", headers=HEADERS)
    assert response.status_code == 502
    assert response.json() == {"error": "ledger_error", "message": "nothing to claim", "details": None}


def test_metadata_unavailable(client):
    response = client.get(f"/ip-assets/{IP_ID}/metadata")
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["registration_date_formatted"] == "Not Available"


def test_metadata_available(client, fakes, core_metadata):
    fakes["ledger"].core[IP_ID] = core_metadata
    body = client.get(f"/ip-assets/{IP_ID}/metadata").json()
    assert body["available"] is True
    assert body["core_metadata"]["owner"] == WALLET
    assert body["registration_date_formatted"] == "January 15, 2024 at 06:00:00 PM UTC"


def test_batch_metadata(client, fakes, core_metadata):
    fakes["ledger"].core[IP_ID] = core_metadata
    response = client.post("/ip-assets/metadata/batch", json={"ip_ids": [IP_ID, PARENT_IP_ID]})
    results = response.json()["results"]
    assert results[IP_ID]["owner"] == WALLET
    assert results[PARENT_IP_ID] is None


def test_export_markdown_download(client, fakes, core_metadata):
    fakes["ledger"].core[IP_ID] = core_metadata
    fakes["index"].sensor_rows[12] = {"id": 12, "title": "Soil Moisture Levels", "type": "moisture",
                                      "location": "Nairobi, Kenya", "data": "Moisture: 45.2%"}

    response = client.get(f"/ip-assets/{IP_ID}/export", params={"format": "markdown", "sensor_data_id": 12})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/markdown")
    assert response.headers["content-disposition"].startswith('attachment; filename="soil_moisture_levels_')
    assert "- **Location:** Nairobi, Kenya" in response.text
    assert "Moisture: 45.2%" in response.text


def test_export_defaults_to_json(client):
    response = client.get(f"/ip-assets/{IP_ID}/export")
    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Untitled IP Asset"
    assert body["errors"]


def test_export_includes_minted_license(client, fakes, core_metadata):
    fakes["ledger"].core[IP_ID] = core_metadata
    client.post("/licenses/mint", headers=HEADERS,
                json={"ip_id": IP_ID, "license_terms_id": "42", "amount": 1})

    response = client.get(f"/ip-assets/{IP_ID}/export", params={"format": "text", "license_receiver": WALLET})

    assert response.headers["content-type"].startswith("text/plain")
    assert "License Terms ID:    42" in response.text


def test_export_rejects_unknown_format(client):
    response = client.get(f"/ip-assets/{IP_ID}/export", params={"format": "pdf"})
    assert response.status_code == 422


def test_health_degraded_without_database(client, monkeypatch):
    monkeypatch.setattr(main, "check_database_connection", lambda: False)
    monkeypatch.setattr(main, "storage_client", None)
    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["components"]["database"] == "unhealthy"
