import importlib.util
from pathlib import Path

import pytest

from ip_provenance.core import database

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "run_dev.py"


@pytest.fixture
def run_dev(monkeypatch):
    module_spec = importlib.util.spec_from_file_location("run_dev", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)

    started = []
    monkeypatch.setattr(module.uvicorn, "run", lambda app, **kwargs: started.append((app, kwargs)))
    monkeypatch.setattr(database, "check_database_connection", lambda: False)
    module.started = started
    return module


def test_refuses_to_start_without_gateway_settings(run_dev, monkeypatch):
    monkeypatch.delenv("PINATA_JWT", raising=False)
    monkeypatch.setenv("LEDGER_API_URL", "https://ledger.test/api")

    with pytest.raises(SystemExit) as excinfo:
        run_dev.main()

    assert excinfo.value.code == 1
    assert run_dev.started == []


def test_starts_with_unreachable_index(run_dev, monkeypatch):
    monkeypatch.setenv("PINATA_JWT", "test-jwt")
    monkeypatch.setenv("LEDGER_API_URL", "https://ledger.test/api")
    monkeypatch.setenv("API_PORT", "9000")
    monkeypatch.setenv("DEBUG", "false")

    run_dev.main()

    app, kwargs = run_dev.started[0]
    assert app == "ip_provenance.main:app"
    assert kwargs["port"] == 9000
    assert kwargs["reload"] is False
