from core import dependencies
from core.config import settings
from core.ledger import ShipmentLedger
from core.stores.sql import SqlAlchemyStore


def test_get_ledger_shares_one_sql_store(monkeypatch):
    monkeypatch.setattr(dependencies, "_store", None)

    first = dependencies.get_ledger()
    second = dependencies.get_ledger()

    assert isinstance(first, ShipmentLedger)
    assert isinstance(first.store, SqlAlchemyStore)
    assert first.store is second.store
    assert first.store.max_attempts == settings.transaction_max_attempts
