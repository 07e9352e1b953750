# payments/__init__.py
from .callback import CallbackOutcome, reconcile
from .checkout import CheckoutError, OrderCreationFailed, create_order, order_status
from .easypay import EasyPayGateway

__all__ = [
    "CallbackOutcome",
    "CheckoutError",
    "EasyPayGateway",
    "OrderCreationFailed",
    "create_order",
    "order_status",
    "reconcile",
]
