# config.py
# CineScript AI: configuração via variáveis de ambiente
# Os valores padrão servem só para desenvolvimento local; em produção
# todos os PAY_* e as chaves de IA DEVEM ser sobrescritos.
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent


def _load_env_files() -> None:
    """Carrega .env e .env.local (se existirem) sem sobrescrever o ambiente real."""
    for cand in (BASE_DIR / ".env", BASE_DIR / ".env.local"):
        if cand.exists():
            load_dotenv(dotenv_path=str(cand), override=False)


def _flag(name: str, default: str = "") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _decimal(name: str, default: str) -> Decimal:
    raw = os.environ.get(name, default).strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} inválido: {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} deve ser positivo: {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    # Pagamentos (gateway EasyPay / 易支付)
    pay_mch_id: str = "1221"
    pay_sign_key: str = "UB9bu7KKX3bA9gZOk43OxRVl7Z4fsVK7"
    pay_api_base: str = "https://data.kuaizhifu.cn"
    pay_notify_url: str = "https://your-domain.com/api/pay/callback"
    pay_return_url: str = "https://your-domain.com/pay/return"
    pay_per_use_price: Decimal = Decimal("9.9")
    pay_order_name: str = "CineScript AI 按次付费"
    pay_channels: Tuple[str, ...] = ("alipay", "wechat", "wxpay")
    pay_max_count: int = 100
    pay_require_signature: bool = True

    # Gratuidade por sessão
    free_usage_limit: int = 3

    # IA
    free_api_key: Optional[str] = None
    paid_api_key: Optional[str] = None
    free_model: str = "gpt-4o-mini"
    paid_model: str = "gpt-4o"
    fallback_model: str = "gpt-4o-mini"
    ai_timeout_s: float = 60.0
    mock_ai: bool = False

    def api_key_for(self, tier: str) -> Optional[str]:
        return self.paid_api_key if tier == "paid" else self.free_api_key

    def model_for(self, tier: str) -> str:
        return self.paid_model if tier == "paid" else self.free_model


def load_settings() -> Settings:
    """
    Lê o ambiente e devolve um Settings imutável.
    Valores numéricos inválidos levantam ValueError no boot.
    """
    _load_env_files()
    shared_key = os.environ.get("OPENAI_API_KEY", "").strip() or None
    channels = tuple(
        c.strip().lower()
        for c in os.environ.get("PAY_CHANNELS", "alipay,wechat,wxpay").split(",")
        if c.strip()
    )
    free_limit = int(os.environ.get("FREE_USAGE_LIMIT", "3"))
    if free_limit < 0:
        raise ValueError("FREE_USAGE_LIMIT não pode ser negativo")

    return Settings(
        pay_mch_id=os.environ.get("PAY_MCH_ID", "1221").strip(),
        pay_sign_key=os.environ.get("PAY_SIGN_KEY", "UB9bu7KKX3bA9gZOk43OxRVl7Z4fsVK7").strip(),
        pay_api_base=os.environ.get("PAY_API_BASE", "https://data.kuaizhifu.cn").strip().rstrip("/"),
        pay_notify_url=os.environ.get("PAY_NOTIFY_URL", "https://your-domain.com/api/pay/callback").strip(),
        pay_return_url=os.environ.get("PAY_RETURN_URL", "https://your-domain.com/pay/return").strip(),
        pay_per_use_price=_decimal("PAY_PER_USE_PRICE", "9.9"),
        pay_order_name=os.environ.get("PAY_ORDER_NAME", "CineScript AI 按次付费").strip(),
        pay_channels=channels,
        pay_max_count=int(os.environ.get("PAY_MAX_COUNT", "100")),
        pay_require_signature=_flag("PAY_REQUIRE_SIGNATURE", "1"),
        free_usage_limit=free_limit,
        free_api_key=os.environ.get("FREE_OPENAI_API_KEY", "").strip() or shared_key,
        paid_api_key=os.environ.get("PAID_OPENAI_API_KEY", "").strip() or shared_key,
        free_model=os.environ.get("FREE_MODEL", "gpt-4o-mini").strip(),
        paid_model=os.environ.get("PAID_MODEL", "gpt-4o").strip(),
        fallback_model=os.environ.get("FALLBACK_MODEL", "gpt-4o-mini").strip(),
        ai_timeout_s=float(os.environ.get("OPENAI_TIMEOUT_S", "60")),
        mock_ai=_flag("MOCK_AI"),
    )
