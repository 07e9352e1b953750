# services/openai_client.py
# CineScript AI: cliente OpenAI para análise de vídeo + roteiro
# Requisitos: pip install openai
# Chaves por tier: FREE_OPENAI_API_KEY / PAID_OPENAI_API_KEY (ou OPENAI_API_KEY)

import json
from typing import Any, Dict, Optional

from openai import OpenAI

from config import Settings
from services.prompts import SYSTEM_PROMPT, build_prompt
from utils.logger import get_logger

logger = get_logger("ai")


class UpstreamAIFailure(Exception):
    """Falha do provedor de IA; o chamador pode tentar de novo."""


class MalformedModelOutput(UpstreamAIFailure):
    """Resposta do modelo não é o JSON esperado."""


def parse_model_json(text: str) -> Dict[str, Any]:
    """
    Extrai o objeto JSON da resposta do modelo.
    Remove blocos ```json ... ``` e recorta do primeiro '{' ao último '}'.
    Não há fallback: saída inválida vira MalformedModelOutput.
    """
    if not text or not text.strip():
        raise MalformedModelOutput("AI 未返回结果")
    cleaned = text.replace("```json", "").replace("```", "")
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise MalformedModelOutput(f"JSON inválido: {e}") from e
    if not isinstance(data, dict):
        raise MalformedModelOutput("resposta não é um objeto JSON")
    if not isinstance(data.get("analysis"), dict) or not isinstance(data.get("script"), dict):
        raise MalformedModelOutput("faltam 'analysis' ou 'script'")
    return data


def _shape(data: Dict[str, Any], used_model: str) -> Dict[str, Any]:
    analysis = data["analysis"]
    script = data["script"]
    out = {
        "analysis": {
            "theme": str(analysis.get("theme") or ""),
            "audience": str(analysis.get("audience") or ""),
            "structure": analysis.get("structure") or [],
            "corePoints": analysis.get("corePoints") or [],
            "transcriptSegments": analysis.get("transcriptSegments") or [],
        },
        "script": {
            "title": str(script.get("title") or ""),
            "scenes": script.get("scenes") or [],
        },
        "usedModel": used_model,
    }
    # garante tipos
    for key in ("structure", "corePoints", "transcriptSegments"):
        if not isinstance(out["analysis"][key], list):
            raise MalformedModelOutput(f"analysis.{key} não é lista")
    if not isinstance(out["script"]["scenes"], list):
        raise MalformedModelOutput("script.scenes não é lista")
    return out


def mock_result(user_input: str, tier: str) -> Dict[str, Any]:
    return {
        "analysis": {
            "theme": "示例主题",
            "audience": "目标受众示例",
            "structure": [
                {
                    "section": "开篇",
                    "timestamp": "00:00-00:30",
                    "summary": "开篇概要",
                    "narrativeFunction": "吸引注意",
                }
            ],
            "corePoints": ["核心观点 1", "核心观点 2"],
            "transcriptSegments": [{"title": "00:00 开场白", "content": "这里是示例文案。"}],
        },
        "script": {
            "title": "示例脚本",
            "scenes": [
                {
                    "sceneNumber": 1,
                    "location": "室内",
                    "shotType": "特写",
                    "visuals": "画面描述示例",
                    "audio": "对白示例",
                }
            ],
        },
        "usedModel": "paid-mock" if tier == "paid" else "free-mock",
        "inputEcho": user_input,
    }


class ScriptAnalyzer:
    """
    - Tier escolhe chave e modelo principal.
    - Sem chave (ou MOCK_AI=1): devolve resultado simulado.
    - Falha no modelo principal: UMA tentativa no FALLBACK_MODEL, sem loop de retentativas.
    - Levanta UpstreamAIFailure quando as duas falham; nunca devolve resultado parcial.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._clients: Dict[str, Any] = {}

    def _client_for(self, tier: str) -> Optional[Any]:
        if tier in self._clients:
            return self._clients[tier]
        api_key = self.settings.api_key_for(tier)
        if not api_key:
            return None
        # sem retentativas do SDK: o fallback é feito aqui
        client = OpenAI(api_key=api_key, timeout=self.settings.ai_timeout_s, max_retries=0)
        self._clients[tier] = client
        return client

    def _call(self, client: Any, model: str, prompt: str) -> Dict[str, Any]:
        try:
            resp = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.4,
                timeout=self.settings.ai_timeout_s,
            )
            text = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            raise UpstreamAIFailure(f"{model}: {e}") from e
        return _shape(parse_model_json(text), model)

    def analyze(self, user_input: str, tier: str) -> Dict[str, Any]:
        client = None if self.settings.mock_ai else self._client_for(tier)
        if client is None:
            return mock_result(user_input, tier)

        prompt = build_prompt(user_input)
        primary = self.settings.model_for(tier)
        fallback = self.settings.fallback_model
        try:
            return self._call(client, primary, prompt)
        except UpstreamAIFailure as e:
            logger.warning("[ANALYZE] modelo principal %s falhou, tentando %s: %s", primary, fallback, e)
        try:
            return self._call(client, fallback, prompt)
        except UpstreamAIFailure as e:
            logger.error("[ANALYZE] fallback %s também falhou: %s", fallback, e)
            raise
