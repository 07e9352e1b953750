from __future__ import annotations

from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, make_response, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Settings, load_settings
from db import LedgerStore, init_db
from payments import (
    CheckoutError,
    OrderCreationFailed,
    create_order,
    order_status,
    reconcile,
)
from services.credits import QuotaExceeded, metered_usage, normalize_tier, usage_snapshot
from services.openai_client import ScriptAnalyzer, UpstreamAIFailure
from utils.logger import get_logger

logger = get_logger("app")

# Rotas montadas duas vezes: "/" (servidor) e "/api" (front-end / serverless)
api = Blueprint("cinescript", __name__)


# ==========================================================
# Helpers de request
# ==========================================================
def _settings() -> Settings:
    return current_app.extensions["cinescript.settings"]


def _store() -> LedgerStore:
    return current_app.extensions["cinescript.store"]


def _analyzer() -> ScriptAnalyzer:
    return current_app.extensions["cinescript.analyzer"]


def _first_hop(value: Optional[str]) -> str:
    return (value or "").split(",")[0].strip()


def get_session_id() -> str:
    """
    Identidade fraca: header X-Session-Id, senão IP de rede.
    Contas autenticadas ficam para o futuro; hoje a sessão é só essa string.
    """
    for name in ("X-Session-Id", "X-SessionId", "X-Session_Id"):
        v = (request.headers.get(name) or "").strip()
        if v:
            return v
    return _first_hop(request.headers.get("X-Forwarded-For")) or request.remote_addr or "anonymous"


def get_client_ip() -> str:
    return (
        _first_hop(request.headers.get("X-Forwarded-For"))
        or (request.headers.get("X-Real-IP") or "").strip()
        or request.remote_addr
        or "127.0.0.1"
    )


def _callback_params() -> dict:
    # gateway pode notificar por GET (query) ou POST (form / JSON)
    params = request.args.to_dict()
    params.update(request.form.to_dict())
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        params.update(data)
    return params


def _text(body: str, status: int = 200):
    resp = make_response(body, status)
    resp.mimetype = "text/plain"
    return resp


# ==========================================================
# Web
# ==========================================================
@api.get("/health")
def health():
    return _text("ok")


@api.get("/credits")
def credits_status():
    sid = get_session_id()
    return jsonify(usage_snapshot(_store().users, sid, _settings().free_usage_limit))


# ==========================================================
# Analyze
# ==========================================================
@api.post("/analyze")
def analyze():
    tier = normalize_tier(request.args.get("tier", "free"))
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"ok": False, "error": "请求格式错误。"}), 400
    text = str(data.get("input") or "").strip()
    if not text:
        return jsonify({"ok": False, "error": "请输入视频链接或描述。"}), 400

    sid = get_session_id()
    try:
        with metered_usage(_store().users, sid, tier, _settings().free_usage_limit):
            result = _analyzer().analyze(text, tier)
    except QuotaExceeded as e:
        logger.info("[ANALYZE] session=%s tier=%s sem cota", sid, tier)
        return jsonify({"ok": False, "error": e.message, "code": "quota_exceeded"}), 402
    except UpstreamAIFailure as e:
        logger.warning("[ANALYZE] session=%s tier=%s falha de IA: %s", sid, tier, e)
        return jsonify({"ok": False, "error": "分析失败，请稍后重试。", "retryable": True}), 502

    return jsonify(result)


# ==========================================================
# Pagamentos (EasyPay)
# ==========================================================
@api.post("/pay")
def pay():
    data = request.get_json(silent=True) or request.form.to_dict() or {}
    if not isinstance(data, dict):
        return jsonify({"ok": False, "error": "请求格式错误。"}), 400
    try:
        order = create_order(
            _store(),
            _settings(),
            session_id=get_session_id(),
            channel=data.get("channel") or "alipay",
            count=data.get("count", 1),
            client_ip=get_client_ip(),
        )
    except CheckoutError as e:
        return jsonify({"ok": False, "error": str(e)}), 400
    except OrderCreationFailed:
        return _text("支付下单失败，请稍后重试", 500)

    return jsonify({
        "orderId": order["orderId"],
        "amount": float(order["amount"]),
        "payUrl": order["payUrl"],
        "qrUrl": order["qrUrl"],
        "channel": order["channel"],
    })


@api.get("/pay/status")
def pay_status():
    status = order_status(_store(), request.args.get("orderId"))
    if status is None:
        return jsonify({"status": "not_found"}), 404
    return jsonify(status)


@api.route("/pay/callback", methods=["GET", "POST"])
def pay_callback():
    """
    notify_url do gateway. Responde o literal "success" para parar reenvios;
    "fail" (400) faz o gateway reenviar mais tarde.
    """
    outcome = reconcile(_callback_params(), _store(), _settings())
    return _text(outcome.body, 200 if outcome.accepted else 400)


# ==========================================================
# App
# ==========================================================
def create_app(settings: Optional[Settings] = None, store: Optional[LedgerStore] = None) -> Flask:
    settings = settings or load_settings()
    flask_app = Flask(__name__)
    flask_app.json.ensure_ascii = False
    flask_app.extensions["cinescript.settings"] = settings
    flask_app.extensions["cinescript.store"] = store or init_db()
    flask_app.extensions["cinescript.analyzer"] = ScriptAnalyzer(settings)

    CORS(
        flask_app,
        supports_credentials=True,
        allow_headers=["Content-Type", "X-Session-Id", "X-Requested-With"],
    )
    flask_app.register_blueprint(api)
    flask_app.register_blueprint(api, url_prefix="/api", name="cinescript_api")

    @flask_app.errorhandler(Exception)
    def _unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("[APP] erro inesperado em %s", request.path)
        return jsonify({"ok": False, "error": "服务异常，请稍后重试"}), 500

    return flask_app


app = create_app()
logger.info("[BOOT] CineScript AI pronto.")

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=4000, debug=True, threaded=True)
