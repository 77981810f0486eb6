import json

import pytest

from ip_provenance.core.errors import LedgerError, PersistenceWarning
from ip_provenance.core.hashing import canonical_json
from ip_provenance.models.asset import CoreMetadata, Locator, SensorDataSource, SigningContext

WALLET = "0x1111111111111111111111111111111111111111"
IP_ID = "0xA1b2C3d4E5f60718293a4B5c6D7e8F9012345678"
PARENT_IP_ID = "0xB2c3D4e5F60718293a4b5C6d7E8f901234567890"


class FakeStorage:
    """Records every pin and hands out sequential CIDs."""

    def __init__(self, fail=None):
        self.calls = []
        self.pinned = {}
        self.fail = fail

    def _pin(self, name, data):
        if self.fail is not None:
            raise self.fail
        cid = f"QmFake{len(self.calls)}"
        self.calls.append(name)
        self.pinned[cid] = data
        return Locator(cid=cid)

    def upload_json(self, document, name="metadata.json"):
        return self._pin(name, canonical_json(document).encode("utf-8"))

    def upload_file(self, content, name):
        return self._pin(name, content.encode("utf-8") if isinstance(content, str) else content)


class FakeLedger:
    """Ledger double: records (method, kwargs) pairs and returns canned replies."""

    def __init__(self, fail=None, claimable=0):
        self.calls = []
        self.fail = fail
        self.claimable = claimable
        self.core = {}
        self.json_strings = {}

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))
        if self.fail is not None:
            raise self.fail

    def register_ip_asset(self, signing, spg_nft_contract, license_terms, ip_metadata):
        self._record("register_ip_asset", signing=signing, license_terms=license_terms, ip_metadata=ip_metadata)
        return {"ip_id": IP_ID, "tx_hash": "0xtx1", "token_id": "7", "license_terms_ids": ["42"]}

    def register_derivative_ip_asset(self, signing, spg_nft_contract, **kwargs):
        self._record("register_derivative_ip_asset", signing=signing, **kwargs)
        return {"ip_id": IP_ID, "tx_hash": "0xtx2", "token_id": "8"}

    def mint_license_tokens(self, signing, licensor_ip_id, license_terms_id, amount, receiver):
        self._record("mint_license_tokens", licensor_ip_id=licensor_ip_id,
                     license_terms_id=license_terms_id, amount=amount, receiver=receiver)
        return {"tx_hash": "0xtx3", "license_token_ids": [str(100 + i) for i in range(amount)]}

    def pay_royalty_on_behalf(self, signing, receiver_ip_id, payer_ip_id, token, amount):
        self._record("pay_royalty_on_behalf", receiver_ip_id=receiver_ip_id,
                     payer_ip_id=payer_ip_id, token=token, amount=amount)
        return {"tx_hash": "0xtx4"}

    def claimable_revenue(self, signing, ip_id, claimer, token):
        self._record("claimable_revenue", ip_id=ip_id, claimer=claimer, token=token)
        return self.claimable

    def claim_all_revenue(self, signing, ancestor_ip_id, claimer, currency_tokens,
                          child_ip_ids=(), royalty_policies=()):
        self._record("claim_all_revenue", ancestor_ip_id=ancestor_ip_id, claimer=claimer,
                     currency_tokens=list(currency_tokens), child_ip_ids=list(child_ip_ids),
                     royalty_policies=list(royalty_policies))
        return {"tx_hashes": ["0xtx5"], "claimed_tokens": ["1000"]}

    def get_core_metadata(self, ip_id):
        self._record("get_core_metadata", ip_id=ip_id)
        if ip_id not in self.core:
            raise LedgerError(f"IP asset {ip_id} is not registered")
        return self.core[ip_id]

    def get_json_string(self, ip_id):
        self._record("get_json_string", ip_id=ip_id)
        if ip_id not in self.json_strings:
            raise LedgerError("no json string")
        return self.json_strings[ip_id]

    def is_supported(self, ip_id):
        return ip_id in self.core


class FakeIndex:
    def __init__(self, fail=False):
        self.fail = fail
        self.records = []
        self.sensor_rows = {}

    def _save(self, table, record):
        if self.fail:
            raise PersistenceWarning(f"{table} not saved to index: connection refused")
        self.records.append((table, record))

    def save_ip_registration(self, sensor_data_id, registration):
        self._save("sensor_data", dict(registration, id=sensor_data_id))

    def save_derivative_registration(self, record):
        self._save("derivative_ip_assets", record)
        return 1

    def save_license_minting(self, record):
        self._save("licenses", record)

    def save_royalty_payment(self, record):
        self._save("royalty_payments", record)

    def get_licenses_by_receiver(self, address):
        return [r for t, r in self.records if t == "licenses" and r["receiver_address"].lower() == address.lower()]

    def get_sensor_records(self, ids):
        return [self.sensor_rows[i] for i in ids if i in self.sensor_rows]


class FakeResponse:
    def __init__(self, status_code=200, content=b"", payload=None):
        self.status_code = status_code
        self.content = content
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload

    @property
    def text(self):
        if self._payload is not None:
            return json.dumps(self._payload, indent=2)
        return self.content.decode("utf-8", "replace")


class FakeSession:
    """requests.Session double serving fixed responses by URL."""

    def __init__(self, responses=None, error=None):
        self.responses = responses or {}
        self.error = error
        self.requested = []

    def get(self, url, timeout=None, **kwargs):
        self.requested.append(url)
        if self.error is not None:
            raise self.error
        return self.responses.get(url, FakeResponse(404))


@pytest.fixture
def signing():
    return SigningContext(address=WALLET)


@pytest.fixture
def moisture_source():
    return SensorDataSource(
        id=12,
        type="moisture",
        title="Soil Moisture Levels",
        data="Moisture: 45.2%, 46.1%, 44.8% | Depth: 10cm",
        timestamp="2024-01-15T18:00:00Z",
        sensor_health="96%",
        location="Nairobi, Kenya",
        source="blynk",
        creator_address="0x2222222222222222222222222222222222222222",
    )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def core_metadata():
    return CoreMetadata(
        nft_token_uri="https://ipfs.io/ipfs/QmNft",
        nft_metadata_hash="0x" + "ab" * 32,
        metadata_uri="https://ipfs.io/ipfs/QmIp",
        metadata_hash="0x" + "cd" * 32,
        registration_date=1705341600,
        owner=WALLET,
    )
