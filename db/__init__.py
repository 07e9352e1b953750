# db/__init__.py
# Armazenamento em memória (volátil): um restart perde pedidos e créditos.
# Para trocar por Redis/Postgres basta outra implementação com a mesma
# interface de OrderLedger/UserLedger.
import threading
from typing import Optional

from .models import OrderLedger, UserLedger


class LedgerStore:
    def __init__(self, orders: Optional[OrderLedger] = None, users: Optional[UserLedger] = None):
        self.orders = orders or OrderLedger()
        self.users = users or UserLedger()


_store: Optional[LedgerStore] = None
_store_lock = threading.Lock()


def init_db() -> LedgerStore:
    """
    Cria o store do processo se ainda não existir. Idempotente.
    """
    global _store
    with _store_lock:
        if _store is None:
            _store = LedgerStore()
        return _store


def get_store() -> LedgerStore:
    return _store or init_db()


def reset_db() -> LedgerStore:
    """Descarta todo o estado (usado pelos testes)."""
    global _store
    with _store_lock:
        _store = LedgerStore()
        return _store
