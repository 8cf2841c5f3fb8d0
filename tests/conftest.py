import pytest

import db.connection as connection_module
from repositories.transaction_registry import TransactionRegistry
from tests.fakes import FakePool


@pytest.fixture
def fake_pool(monkeypatch):
    fake = FakePool()
    monkeypatch.setattr(connection_module, "_pool", fake)
    monkeypatch.setattr(connection_module, "_returned_at", {})
    return fake


@pytest.fixture
def registry():
    return TransactionRegistry()
