from contextlib import contextmanager
from typing import Dict, Iterator

from db.models import UserLedger


class QuotaExceeded(Exception):
    def __init__(self, tier: str, message: str):
        super().__init__(message)
        self.tier = tier
        self.message = message


def normalize_tier(raw: str) -> str:
    return "paid" if (raw or "").strip().lower() == "paid" else "free"


def _check(users: UserLedger, session_id: str, tier: str, free_limit: int) -> None:
    state = users.get_or_create(session_id)
    if tier == "free" and state.free_used >= free_limit:
        raise QuotaExceeded(tier, "免费次数已用完，请付费后重试。")
    if tier == "paid" and state.credits <= 0:
        raise QuotaExceeded(tier, "付费额度不足，请先支付。")


@contextmanager
def metered_usage(users: UserLedger, session_id: str, tier: str, free_limit: int) -> Iterator[None]:
    """
    Reserva uma análise para a sessão.
    - Checa a cota antes de qualquer chamada de IA (QuotaExceeded se esgotada).
    - Segura o gate da sessão até o fim do bloco: análises simultâneas
      da mesma sessão são serializadas e não furam o saldo. Créditos vindos
      de callback entram em paralelo (só aumentam o saldo).
    - O consumo (free_used += 1 ou crédito -1) só é gravado se o bloco terminar
      sem exceção; falha da IA não cobra o usuário.
    """
    with users.usage_gate(session_id):
        _check(users, session_id, tier, free_limit)
        yield
        if tier == "paid":
            if not users.consume_credit(session_id):
                # impossível com o gate da sessão em mãos
                raise QuotaExceeded(tier, "付费额度不足，请先支付。")
        else:
            users.increment_free_used(session_id)


def usage_snapshot(users: UserLedger, session_id: str, free_limit: int) -> Dict[str, int]:
    state = users.get_or_create(session_id)
    return {
        "freeUsed": state.free_used,
        "freeLimit": free_limit,
        "freeRemaining": max(0, free_limit - state.free_used),
        "credits": state.credits,
    }
