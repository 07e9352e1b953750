from decimal import Decimal
from typing import Any, Dict, Tuple
from urllib.parse import urlencode

from config import Settings
from utils.security import build_sign, verify_sign

# trade_status que o gateway usa para "pago" (case-sensitive)
PAID_STATUSES = frozenset({"TRADE_SUCCESS", "SUCCESS", "success"})

# campos de assinatura que não entram na verificação do callback
SIGNATURE_FIELDS = ("sign", "sign_type")


class EasyPayGateway:
    """
    Gateway EasyPay (易支付): pagamento por redirecionamento GET para /submit.php
    com parâmetros assinados em MD5. O gateway só fala conosco pelo notify_url.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def submit_url(self) -> str:
        return f"{self.settings.pay_api_base}/submit.php"

    def build_payload(self, order_id: str, channel: str, amount: Decimal, client_ip: str) -> Dict[str, Any]:
        return {
            "pid": self.settings.pay_mch_id,
            "type": channel,
            "out_trade_no": order_id,
            "notify_url": self.settings.pay_notify_url,
            "return_url": self.settings.pay_return_url,
            "name": self.settings.pay_order_name,
            "money": str(amount),
            "clientip": client_ip or "",
            "sign_type": "MD5",
        }

    def start_checkout(self, order_id: str, channel: str, amount: Decimal, client_ip: str) -> Tuple[str, Dict[str, Any]]:
        """Retorna (pay_url, payload assinado). O payload não inclui 'sign'."""
        if not self.settings.pay_api_base or not self.settings.pay_mch_id:
            raise ValueError("PAY_API_BASE/PAY_MCH_ID não configurados")
        payload = self.build_payload(order_id, channel, amount, client_ip)
        sign = build_sign(payload, self.settings.pay_sign_key)
        query = urlencode({**payload, "sign": sign})
        return f"{self.submit_url}?{query}", payload

    def verify_callback(self, params: Dict[str, Any], sign: str) -> bool:
        signable = {k: v for k, v in params.items() if k not in SIGNATURE_FIELDS}
        return verify_sign(signable, sign, self.settings.pay_sign_key)
