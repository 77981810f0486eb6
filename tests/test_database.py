from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from ip_provenance.core import database
from ip_provenance.core.errors import PersistenceWarning


@pytest.fixture
def cursor(monkeypatch):
    cur = MagicMock()
    cur.rowcount = 1
    cur.fetchone.return_value = (5,)
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur

    @contextmanager
    def fake_connection():
        yield conn

    monkeypatch.setattr(database, "get_db_connection", fake_connection)
    cur.conn = conn
    return cur


def test_save_ip_registration_updates_sensor_row(cursor):
    database.save_ip_registration(12, {"ip_asset_id": "0xIp", "license_terms_ids": ["42"]})

    sql, params = cursor.execute.call_args[0]
    assert "UPDATE sensor_data" in sql
    assert params[1] == "0xIp"
    assert params[-1] == 12
    cursor.conn.commit.assert_called_once()


def test_save_ip_registration_missing_row(cursor):
    cursor.rowcount = 0
    with pytest.raises(LookupError):
        database.save_ip_registration(99, {"ip_asset_id": "0xIp"})


def test_save_derivative_registration_returns_id(cursor):
    record_id = database.save_derivative_registration({"sensor_data_id": 12, "derivative_ip_id": "0xD"})
    assert record_id == 5
    sql, params = cursor.execute.call_args[0]
    assert "INSERT INTO derivative_ip_assets" in sql
    assert params[:2] == [12, "0xD"]


def test_save_royalty_payment_stringifies_amount(cursor):
    from decimal import Decimal
    database.save_royalty_payment({
        "payer_ip_id": "0xA", "receiver_ip_id": "0xB", "amount": Decimal("1.25"),
        "transaction_hash": "0xtx", "direction": "direct_support",
    })
    params = cursor.execute.call_args[0][1]
    assert params[2] == "1.25"


def test_index_downgrades_failures_to_warnings(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(database, "save_license_minting", broken)
    monkeypatch.setattr(database, "save_derivative_registration", broken)

    index = database.OffChainIndex()
    with pytest.raises(PersistenceWarning):
        index.save_license_minting({"amount": 1})
    with pytest.raises(PersistenceWarning) as excinfo:
        index.save_derivative_registration({})
    assert "connection refused" in str(excinfo.value)
