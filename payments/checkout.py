from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from config import Settings
from db import LedgerStore
from db.models import Order
from payments.easypay import EasyPayGateway
from utils.logger import get_logger

logger = get_logger("pay")


class CheckoutError(Exception):
    """Pedido inválido (canal ou quantidade)."""


class OrderCreationFailed(Exception):
    """Falha ao montar a URL do gateway / configuração; o cliente deve tentar de novo."""


def quantize_amount(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_amount(count: int, unit_price: Decimal) -> Decimal:
    return quantize_amount(Decimal(count) * Decimal(unit_price))


def _parse_count(raw: Any, max_count: int) -> int:
    if isinstance(raw, bool):
        raise CheckoutError("count inválido")
    try:
        count = int(raw)
    except (TypeError, ValueError):
        raise CheckoutError("count inválido")
    if isinstance(raw, float) and raw != count:
        raise CheckoutError("count inválido")
    if count < 1 or count > max_count:
        raise CheckoutError(f"count deve estar entre 1 e {max_count}")
    return count


def create_order(
    store: LedgerStore,
    settings: Settings,
    session_id: str,
    channel: Optional[str] = "alipay",
    count: Any = 1,
    client_ip: str = "",
    gateway: Optional[EasyPayGateway] = None,
) -> Dict[str, Any]:
    """
    Cria um pedido pendente e a URL de pagamento assinada.
    Retorna {orderId, amount, payUrl, qrUrl, channel, payload}.
    """
    channel = (channel or "alipay").strip().lower()
    if channel not in settings.pay_channels:
        raise CheckoutError(f"canal não suportado: {channel}")
    count = _parse_count(count, settings.pay_max_count)
    amount = compute_amount(count, settings.pay_per_use_price)

    gateway = gateway or EasyPayGateway(settings)
    order_id = store.orders.new_order_id()
    try:
        pay_url, payload = gateway.start_checkout(order_id, channel, amount, client_ip)
    except Exception as e:
        logger.exception("[PAY] falha ao montar URL do pedido %s", order_id)
        raise OrderCreationFailed(str(e)) from e

    store.orders.create(Order(
        order_id=order_id,
        channel=channel,
        count=count,
        amount=amount,
        session_id=session_id,
        signed_payload=payload,
    ))
    logger.info("[PAY] pedido %s criado: session=%s count=%s amount=%s channel=%s",
                order_id, session_id, count, amount, channel)
    return {
        "orderId": order_id,
        "amount": amount,
        "payUrl": pay_url,
        "qrUrl": pay_url,
        "channel": channel,
        "payload": payload,
    }


def order_status(store: LedgerStore, order_id: Optional[str]) -> Optional[Dict[str, Any]]:
    order = store.orders.get(order_id) if order_id else None
    if order is None:
        return None
    return {"status": order.status, "paidCount": order.paid_count}
