import hashlib

from utils.security import build_sign, build_sign_string, verify_sign

KEY = "UB9bu7KKX3bA9gZOk43OxRVl7Z4fsVK7"


def test_sign_string_sorts_and_drops_empty_values():
    params = {"type": "alipay", "pid": "1221", "name": "", "clientip": None, "money": "9.90", "sign": "abc"}
    assert build_sign_string(params, KEY) == f"money=9.90&pid=1221&type=alipay&{KEY}"


def test_sign_string_without_key_has_no_trailing_ampersand():
    assert build_sign_string({"b": "2", "a": "1"}, "") == "a=1&b=2"


def test_sign_is_lowercase_md5_of_canonical_string():
    params = {"out_trade_no": "ORD-1", "money": "9.90"}
    expected = hashlib.md5(f"money=9.90&out_trade_no=ORD-1&{KEY}".encode("utf-8")).hexdigest()
    assert build_sign(params, KEY) == expected
    assert build_sign(params, KEY) == build_sign(params, KEY).lower()


def test_sign_handles_utf8_values():
    params = {"name": "CineScript AI 按次付费"}
    expected = hashlib.md5(f"name=CineScript AI 按次付费&{KEY}".encode("utf-8")).hexdigest()
    assert build_sign(params, KEY) == expected


def test_sign_ignores_key_order():
    a = {"pid": "1221", "money": "9.90", "type": "alipay"}
    b = {"type": "alipay", "money": "9.90", "pid": "1221"}
    assert build_sign(a, KEY) == build_sign(b, KEY)


def test_verify_accepts_own_signature():
    params = {"pid": "1221", "out_trade_no": "ORD-1", "money": "9.90", "trade_status": "TRADE_SUCCESS"}
    assert verify_sign(params, build_sign(params, KEY), KEY)


def test_verify_rejects_any_changed_field():
    params = {"pid": "1221", "out_trade_no": "ORD-1", "money": "9.90", "trade_status": "TRADE_SUCCESS"}
    sign = build_sign(params, KEY)
    for field in params:
        tampered = dict(params, **{field: params[field] + "x"})
        assert not verify_sign(tampered, sign, KEY), field


def test_verify_rejects_wrong_key_and_empty_sign():
    params = {"money": "9.90"}
    assert not verify_sign(params, build_sign(params, KEY), "other-key")
    assert not verify_sign(params, "", KEY)


def test_verify_ignores_sign_field_inside_params():
    params = {"money": "9.90"}
    sign = build_sign(params, KEY)
    assert verify_sign(dict(params, sign=sign), sign, KEY)


def test_verify_returns_false_for_non_ascii_sign():
    params = {"money": "9.90"}
    assert verify_sign(params, "é" * 32, KEY) is False
    assert verify_sign(params, "签名", KEY) is False
