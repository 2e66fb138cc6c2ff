from typing import Optional

from core.config import settings
from core.ledger import ShipmentLedger
from core.stores.base import LedgerStore
from core.stores.sql import SqlAlchemyStore
from db.database import async_session_maker

_store: Optional[LedgerStore] = None


def get_store() -> LedgerStore:
    global _store
    if _store is None:
        _store = SqlAlchemyStore(async_session_maker, max_attempts=settings.transaction_max_attempts)
    return _store


def get_ledger() -> ShipmentLedger:
    return ShipmentLedger(get_store())
