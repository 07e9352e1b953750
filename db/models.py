import secrets
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional

ORDER_PENDING = "pending"
ORDER_SUCCESS = "success"


class DuplicateOrder(Exception):
    pass


# Helpers de domínio
@dataclass
class Order:
    order_id: str
    channel: str
    count: int
    amount: Decimal
    session_id: str
    status: str = ORDER_PENDING
    signed_payload: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def paid_count(self) -> int:
        return self.count if self.status == ORDER_SUCCESS else 0


@dataclass
class UserState:
    session_id: str
    free_used: int = 0
    credits: int = 0


def new_order_id() -> str:
    # timestamp em ms + 64 bits aleatórios
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(8)}"


class OrderLedger:
    """
    Tabela de pedidos em memória (processo único).
    Um lock para a tabela inteira; mark_success é compare-and-set.
    Leituras devolvem cópias: só o ledger altera suas entradas.
    """

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = threading.RLock()

    def new_order_id(self) -> str:
        with self._lock:
            oid = new_order_id()
            while oid in self._orders:
                oid = new_order_id()
            return oid

    def create(self, order: Order) -> str:
        with self._lock:
            if order.order_id in self._orders:
                raise DuplicateOrder(order.order_id)
            self._orders[order.order_id] = replace(
                order, status=ORDER_PENDING, signed_payload=dict(order.signed_payload)
            )
            return order.order_id

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            return replace(order, signed_payload=dict(order.signed_payload))

    def mark_success(self, order_id: str) -> bool:
        """pending -> success. False se o pedido não existe ou já foi pago."""
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status == ORDER_SUCCESS:
                return False
            order.status = ORDER_SUCCESS
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)


class UserLedger:
    """
    Contadores por sessão (gratuidade usada e créditos pagos).
    Dois locks por sessão:
    - saldo: toda mutação é read-modify-write sob ele (seguro por pouco tempo)
    - gate: serializa as análises da sessão entre checagem e consumo; pode ficar
      preso durante a chamada de IA, por isso add_credits não depende dele
    """

    def __init__(self):
        self._users: Dict[str, UserState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._gates: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._table_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.RLock()
            return lock

    @contextmanager
    def usage_gate(self, session_id: str) -> Iterator[None]:
        with self._table_lock:
            gate = self._gates.get(session_id)
            if gate is None:
                gate = self._gates[session_id] = threading.Lock()
        with gate:
            yield

    def _state(self, session_id: str) -> UserState:
        with self._table_lock:
            state = self._users.get(session_id)
            if state is None:
                state = self._users[session_id] = UserState(session_id=session_id)
            return state

    @contextmanager
    def locked(self, session_id: str) -> Iterator[None]:
        with self._lock_for(session_id):
            yield

    def get_or_create(self, session_id: str) -> UserState:
        with self.locked(session_id):
            return replace(self._state(session_id))

    def increment_free_used(self, session_id: str) -> int:
        with self.locked(session_id):
            state = self._state(session_id)
            state.free_used += 1
            return state.free_used

    def add_credits(self, session_id: str, n: int) -> int:
        if n < 0:
            raise ValueError("n deve ser >= 0")
        with self.locked(session_id):
            state = self._state(session_id)
            state.credits += n
            return state.credits

    def consume_credit(self, session_id: str) -> bool:
        with self.locked(session_id):
            state = self._state(session_id)
            if state.credits <= 0:
                return False
            state.credits -= 1
            return True
