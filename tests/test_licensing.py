from decimal import Decimal

import pytest

from ip_provenance.core.errors import InvalidAmountError, ValidationError, WalletNotConnectedError
from ip_provenance.models.asset import SigningContext
from ip_provenance.services.licensing import LicensingService, total_cost, validate_mint_amount

from conftest import FakeIndex, IP_ID, WALLET


@pytest.mark.parametrize("amount", [0, -1])
def test_mint_rejects_non_positive_amount_before_network(amount, ledger, signing):
    service = LicensingService(ledger)
    with pytest.raises(InvalidAmountError):
        service.mint(IP_ID, "42", amount, signing)
    assert ledger.calls == []


@pytest.mark.parametrize("amount", [1.5, "3", True, None])
def test_mint_rejects_non_integer_amount(amount, ledger, signing):
    with pytest.raises(InvalidAmountError):
        LicensingService(ledger).mint(IP_ID, "42", amount, signing)
    assert ledger.calls == []


def test_invalid_amount_is_a_validation_error():
    with pytest.raises(ValidationError) as excinfo:
        validate_mint_amount(0)
    assert excinfo.value.field == "amount"


def test_mint_passes_amount_through(ledger, signing):
    result = LicensingService(ledger).mint(IP_ID, "42", 3, signing, unit_fee="0.01")

    method, call = ledger.calls[0]
    assert method == "mint_license_tokens"
    assert call["amount"] == 3
    assert call["licensor_ip_id"] == IP_ID
    assert call["license_terms_id"] == "42"
    assert result.amount == 3
    assert result.license_token_ids == ["100", "101", "102"]
    assert result.total_fee == Decimal("0.03")


def test_total_cost_is_exact():
    assert total_cost(3, "0.01") == Decimal("0.03")
    assert total_cost(3, 0.01) == Decimal("0.03")
    assert total_cost(7, Decimal("0.1")) == Decimal("0.7")


def test_total_cost_rejects_negative_fee():
    with pytest.raises(ValidationError):
        total_cost(1, "-0.01")


def test_receiver_defaults_to_wallet(ledger, signing):
    result = LicensingService(ledger).mint(IP_ID, "42", 1, signing)
    assert ledger.calls[0][1]["receiver"] == WALLET
    assert result.receiver == WALLET


def test_explicit_receiver(ledger, signing):
    receiver = "0x4444444444444444444444444444444444444444"
    LicensingService(ledger).mint(IP_ID, "42", 2, signing, receiver=receiver)
    assert ledger.calls[0][1]["receiver"] == receiver


def test_mint_requires_wallet(ledger):
    with pytest.raises(WalletNotConnectedError):
        LicensingService(ledger).mint(IP_ID, "42", 1, SigningContext(address=""))
    assert ledger.calls == []


def test_mint_requires_terms_id(ledger, signing):
    with pytest.raises(ValidationError) as excinfo:
        LicensingService(ledger).mint(IP_ID, " ", 1, signing)
    assert excinfo.value.field == "license_terms_id"


def test_mint_records_license(ledger, signing, index):
    LicensingService(ledger, index).mint(IP_ID, "42", 2, signing, unit_fee="0.01", sensor_data_id=12)
    table, record = index.records[0]
    assert table == "licenses"
    assert record["amount"] == 2
    assert record["minting_fee_paid"] == "0.02"
    assert record["receiver_address"] == WALLET
    assert record["sensor_data_id"] == 12


def test_mint_survives_index_failure(ledger, signing):
    result = LicensingService(ledger, FakeIndex(fail=True)).mint(IP_ID, "42", 1, signing)
    assert result.tx_hash == "0xtx3"
    assert len(result.warnings) == 1
