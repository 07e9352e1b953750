from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from payments.callback import reconcile
from payments.checkout import create_order
from utils.security import build_sign


@pytest.fixture
def order(store, settings):
    return create_order(store, settings, session_id="s1", channel="alipay", count=1)


def _notify(settings, order_id, money="9.9", trade_status="TRADE_SUCCESS", signed=True, **extra):
    params = {
        "pid": settings.pay_mch_id,
        "trade_no": "2026101922001",
        "out_trade_no": order_id,
        "type": "alipay",
        "name": settings.pay_order_name,
        "money": money,
        "trade_status": trade_status,
    }
    params.update(extra)
    if signed:
        params["sign"] = build_sign(params, settings.pay_sign_key)
        params["sign_type"] = "MD5"
    return params


def test_success_credits_once(store, settings, order):
    params = _notify(settings, order["orderId"])
    outcome = reconcile(params, store, settings)
    assert outcome.accepted and outcome.reason == "credited" and outcome.credited == 1
    assert outcome.body == "success"
    assert store.orders.get(order["orderId"]).status == "success"
    assert store.users.get_or_create("s1").credits == 1

    again = reconcile(params, store, settings)
    assert again.accepted and again.reason == "duplicate" and again.credited == 0
    assert store.users.get_or_create("s1").credits == 1


def test_replay_many_times_credits_once(store, settings):
    order = create_order(store, settings, session_id="s2", count=3)
    params = _notify(settings, order["orderId"], money="29.70")
    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: reconcile(params, store, settings), range(40)))
    assert all(o.accepted for o in outcomes)
    assert sum(o.credited for o in outcomes) == 3
    assert store.users.get_or_create("s2").credits == 3


@pytest.mark.parametrize("status", ["TRADE_SUCCESS", "SUCCESS", "success"])
def test_paid_sentinels(store, settings, order, status):
    outcome = reconcile(_notify(settings, order["orderId"], trade_status=status), store, settings)
    assert outcome.reason == "credited"


@pytest.mark.parametrize("status", ["WAIT_BUYER_PAY", "TRADE_CLOSED", "Success", ""])
def test_non_paid_status_acknowledged_without_credit(store, settings, order, status):
    outcome = reconcile(_notify(settings, order["orderId"], trade_status=status), store, settings)
    assert outcome.accepted and outcome.reason == "not_paid"
    assert store.orders.get(order["orderId"]).status == "pending"
    assert store.users.get_or_create("s1").credits == 0


def test_unknown_order_rejected_without_mutation(store, settings, order):
    outcome = reconcile(_notify(settings, "ORD-unknown"), store, settings)
    assert not outcome.accepted and outcome.reason == "order_not_found"
    assert outcome.body == "fail"
    assert store.orders.get(order["orderId"]).status == "pending"
    assert store.users.get_or_create("s1").credits == 0


def test_missing_order_id_rejected(store, settings):
    params = _notify(settings, "")
    assert reconcile(params, store, settings).reason == "missing_order_id"
    assert reconcile({}, store, settings).reason == "missing_order_id"


def test_merchant_mismatch(store, settings, order):
    params = _notify(settings, order["orderId"], pid="9999")
    outcome = reconcile(params, store, settings)
    assert outcome.reason == "merchant_mismatch"
    assert store.users.get_or_create("s1").credits == 0


def test_bad_signature(store, settings, order):
    params = _notify(settings, order["orderId"])
    params["sign"] = "0" * 32
    assert reconcile(params, store, settings).reason == "signature_mismatch"


def test_tampered_field_after_signing(store, settings, order):
    params = _notify(settings, order["orderId"])
    params["trade_no"] = "forged"
    assert reconcile(params, store, settings).reason == "signature_mismatch"


def test_amount_mismatch_even_with_valid_signature(store, settings, order):
    params = _notify(settings, order["orderId"], money="0.01")
    outcome = reconcile(params, store, settings)
    assert outcome.reason == "amount_mismatch"
    assert store.orders.get(order["orderId"]).status == "pending"
    assert store.users.get_or_create("s1").credits == 0


@pytest.mark.parametrize("money", ["9.90", "9.900", " 9.9"])
def test_amount_compared_numerically(store, settings, order, money):
    assert reconcile(_notify(settings, order["orderId"], money=money), store, settings).accepted


@pytest.mark.parametrize("money", ["abc", "", "NaN"])
def test_unparseable_amount_rejected(store, settings, order, money):
    assert reconcile(_notify(settings, order["orderId"], money=money), store, settings).reason == "amount_mismatch"


def test_missing_signature_rejected_by_default(store, settings, order):
    params = _notify(settings, order["orderId"], signed=False)
    outcome = reconcile(params, store, settings)
    assert outcome.reason == "missing_signature"
    assert store.users.get_or_create("s1").credits == 0


def test_missing_signature_allowed_when_configured(store, settings, order):
    relaxed = replace(settings, pay_require_signature=False)
    params = _notify(relaxed, order["orderId"], signed=False)
    assert reconcile(params, store, relaxed).reason == "credited"


def test_extra_gateway_fields_are_signed(store, settings, order):
    params = _notify(settings, order["orderId"], param="custom", buyer="x@y.com")
    assert reconcile(params, store, settings).reason == "credited"


def test_numeric_values_from_json(store, settings, order):
    params = _notify(settings, order["orderId"])
    params["pid"] = int(params["pid"])
    assert reconcile(params, store, settings).reason == "credited"


def test_non_ascii_signature_is_a_mismatch(store, settings, order):
    params = _notify(settings, order["orderId"])
    params["sign"] = "签名"
    outcome = reconcile(params, store, settings)
    assert outcome.reason == "signature_mismatch"
    assert store.users.get_or_create("s1").credits == 0
