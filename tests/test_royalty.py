from decimal import Decimal

import pytest

from ip_provenance import config
from ip_provenance.core.errors import ValidationError, WalletNotConnectedError
from ip_provenance.models.asset import SigningContext
from ip_provenance.services.royalty import RoyaltyService, validate_payment_amount

from conftest import FakeIndex, FakeLedger, IP_ID, PARENT_IP_ID, WALLET


def test_get_claimable_uses_asset_as_claimer(signing):
    ledger = FakeLedger(claimable=2500000000000000000)
    revenue = RoyaltyService(ledger).get_claimable(IP_ID, signing)

    method, call = ledger.calls[0]
    assert method == "claimable_revenue"
    assert call["claimer"] == IP_ID
    assert call["claimer"] != WALLET
    assert call["token"] == config.WIP_TOKEN_ADDRESS
    assert revenue.amount == "2.5"
    assert revenue.amount_wei == 2500000000000000000


def test_claim_all_uses_asset_as_claimer(ledger, signing):
    result = RoyaltyService(ledger).claim_all(IP_ID, signing)

    method, call = ledger.calls[0]
    assert method == "claim_all_revenue"
    assert call["ancestor_ip_id"] == IP_ID
    assert call["claimer"] == IP_ID
    assert call["currency_tokens"] == [config.WIP_TOKEN_ADDRESS]
    assert call["child_ip_ids"] == []
    assert result.claimer == IP_ID
    assert result.tx_hashes == ["0xtx5"]
    assert result.explorer_tx_urls == [f"{config.BLOCK_EXPLORER_URL}/tx/0xtx5"]


def test_claim_from_derivatives_pairs_children_with_policy(ledger, signing):
    children = ["0xC1", "0xC2"]
    RoyaltyService(ledger).claim_from_derivatives(PARENT_IP_ID, children, signing)

    call = ledger.calls[0][1]
    assert call["claimer"] == PARENT_IP_ID
    assert call["child_ip_ids"] == children
    assert call["royalty_policies"] == [config.ROYALTY_POLICY_LAP_ADDRESS] * 2


def test_claim_from_derivatives_requires_children(ledger, signing):
    with pytest.raises(ValidationError):
        RoyaltyService(ledger).claim_from_derivatives(PARENT_IP_ID, ["", " "], signing)
    assert ledger.calls == []


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_pay_rejects_non_positive_amount(amount, ledger, signing):
    with pytest.raises(ValidationError) as excinfo:
        RoyaltyService(ledger).pay(IP_ID, PARENT_IP_ID, amount, signing)
    assert str(excinfo.value) == "Amount must be greater than 0"
    assert ledger.calls == []


@pytest.mark.parametrize("amount", ["abc", "", None, "NaN"])
def test_pay_rejects_non_numeric_amount(amount, ledger, signing):
    with pytest.raises(ValidationError):
        RoyaltyService(ledger).pay(IP_ID, PARENT_IP_ID, amount, signing)
    assert ledger.calls == []


def test_pay_rejects_amount_below_base_unit(ledger, signing):
    with pytest.raises(ValidationError):
        RoyaltyService(ledger).pay(IP_ID, PARENT_IP_ID, "0.0000000000000000001", signing)
    assert ledger.calls == []


def test_pay_converts_to_base_units(ledger, signing, index):
    flow = RoyaltyService(ledger, index).pay(IP_ID, PARENT_IP_ID, "1.25", signing)

    method, call = ledger.calls[0]
    assert method == "pay_royalty_on_behalf"
    assert call["amount"] == 1250000000000000000
    assert call["payer_ip_id"] == IP_ID
    assert call["receiver_ip_id"] == PARENT_IP_ID
    assert flow.amount == Decimal("1.25")
    assert flow.direction == "derivative_to_parent"

    table, record = index.records[0]
    assert table == "royalty_payments"
    assert record["direction"] == "derivative_to_parent"


def test_tip_is_paid_by_zero_address(ledger, signing):
    flow = RoyaltyService(ledger).tip(PARENT_IP_ID, "0.5", signing)
    call = ledger.calls[0][1]
    assert call["payer_ip_id"] == config.ZERO_ADDRESS
    assert call["receiver_ip_id"] == PARENT_IP_ID
    assert flow.direction == "direct_support"


def test_royalty_calls_require_wallet(ledger):
    service = RoyaltyService(ledger)
    with pytest.raises(WalletNotConnectedError):
        service.claim_all(IP_ID, None)
    with pytest.raises(WalletNotConnectedError):
        service.tip(PARENT_IP_ID, "1", SigningContext())
    assert ledger.calls == []


def test_payment_survives_index_failure(ledger, signing):
    flow = RoyaltyService(ledger, FakeIndex(fail=True)).pay(IP_ID, PARENT_IP_ID, "1", signing)
    assert flow.tx_hash == "0xtx4"
    assert len(flow.warnings) == 1


def test_validate_payment_amount_accepts_decimal_strings():
    assert validate_payment_amount(" 0.01 ") == Decimal("0.01")
