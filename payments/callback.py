"""
Reconciliação do callback assíncrono do gateway (notify_url).

Máquina de estados por pedido: pending --(notificação verificada, valor igual)--> success.
Validação fail-closed, para no primeiro erro:
  1. out_trade_no presente e conhecido
  2. pid (se vier) igual ao merchant configurado
  3. assinatura (obrigatória por padrão; ver PAY_REQUIRE_SIGNATURE)
  4. money igual ao valor gravado no pedido
  5. trade_status pago -> marca success e credita order.count na sessão dona (uma única vez)
  6. outro trade_status -> confirma recebimento sem creditar
Nenhuma exceção sai daqui: tudo vira CallbackOutcome.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from config import Settings
from db import LedgerStore
from db.models import ORDER_SUCCESS, Order
from payments.easypay import PAID_STATUSES, EasyPayGateway
from utils.logger import get_logger

logger = get_logger("callback")


class CallbackRejected(Exception):
    reason = "rejected"


class MissingOrderId(CallbackRejected):
    reason = "missing_order_id"


class OrderNotFound(CallbackRejected):
    reason = "order_not_found"


class MerchantMismatch(CallbackRejected):
    reason = "merchant_mismatch"


class MissingSignature(CallbackRejected):
    reason = "missing_signature"


class SignatureMismatch(CallbackRejected):
    reason = "signature_mismatch"


class AmountMismatch(CallbackRejected):
    reason = "amount_mismatch"


@dataclass(frozen=True)
class CallbackOutcome:
    accepted: bool
    reason: str
    order_id: Optional[str] = None
    credited: int = 0

    @property
    def body(self) -> str:
        # literais exigidos pelo gateway para parar de reenviar
        return "success" if self.accepted else "fail"


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def _clean(params: Mapping[str, Any]) -> dict:
    # callbacks podem vir com valores numéricos (JSON) ou lista (form repetido)
    out = {}
    for k, v in params.items():
        if isinstance(v, (list, tuple)):
            v = v[0] if v else ""
        out[str(k)] = "" if v is None else str(v)
    return out


def _validate(params: dict, store: LedgerStore, settings: Settings, gateway: EasyPayGateway) -> Order:
    order_id = params.get("out_trade_no", "").strip()
    if not order_id:
        raise MissingOrderId()
    order = store.orders.get(order_id)
    if order is None:
        raise OrderNotFound()

    pid = params.get("pid", "")
    if pid and pid != str(settings.pay_mch_id):
        raise MerchantMismatch()

    sign = params.get("sign", "")
    if sign:
        if not gateway.verify_callback(params, sign):
            raise SignatureMismatch()
    elif settings.pay_require_signature:
        raise MissingSignature()
    else:
        logger.warning("[CALLBACK] pedido %s sem assinatura; aceito porque PAY_REQUIRE_SIGNATURE=0", order_id)

    money = _as_decimal(params.get("money"))
    if money is None or money != order.amount:
        raise AmountMismatch()
    return order


def reconcile(
    raw_params: Mapping[str, Any],
    store: LedgerStore,
    settings: Settings,
    gateway: Optional[EasyPayGateway] = None,
) -> CallbackOutcome:
    gateway = gateway or EasyPayGateway(settings)
    params = _clean(raw_params or {})
    order_id = params.get("out_trade_no") or None

    try:
        order = _validate(params, store, settings, gateway)
    except CallbackRejected as e:
        logger.warning("[CALLBACK] rejeitado: order=%s reason=%s", order_id, e.reason)
        return CallbackOutcome(accepted=False, reason=e.reason, order_id=order_id)
    except Exception:
        logger.exception("[CALLBACK] erro inesperado validando order=%s", order_id)
        return CallbackOutcome(accepted=False, reason="internal_error", order_id=order_id)

    trade_status = params.get("trade_status", "")
    if trade_status not in PAID_STATUSES:
        logger.info("[CALLBACK] pedido %s com trade_status=%r; sem crédito", order.order_id, trade_status)
        return CallbackOutcome(accepted=True, reason="not_paid", order_id=order.order_id)

    # compare-and-set: só a entrega que vence a transição credita
    if not store.orders.mark_success(order.order_id):
        logger.info("[CALLBACK] pedido %s já está %s; duplicata ignorada", order.order_id, ORDER_SUCCESS)
        return CallbackOutcome(accepted=True, reason="duplicate", order_id=order.order_id)
    balance = store.users.add_credits(order.session_id, order.count)

    logger.info("[CALLBACK] créditos +%s para session=%s (pedido %s, saldo=%s)",
                order.count, order.session_id, order.order_id, balance)
    return CallbackOutcome(accepted=True, reason="credited", order_id=order.order_id, credited=order.count)
