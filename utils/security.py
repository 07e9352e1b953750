import hashlib
import secrets
from typing import Any, Mapping


def _signable_items(params: Mapping[str, Any]):
    for k, v in params.items():
        if k == "sign" or v is None:
            continue
        s = str(v)
        if s == "":
            continue
        yield k, s


def build_sign_string(params: Mapping[str, Any], key: str) -> str:
    """
    Canoniza os parâmetros no formato do gateway:
    remove vazios/None e a própria 'sign', ordena as chaves e junta k=v com '&'.
    A chave compartilhada vai no final como '&<key>' (se não for vazia).
    """
    items = sorted(_signable_items(params), key=lambda kv: kv[0])
    content = "&".join(f"{k}={v}" for k, v in items)
    if key:
        content = f"{content}&{key}"
    return content


def build_sign(params: Mapping[str, Any], key: str) -> str:
    # MD5 é exigido pelo protocolo do gateway
    raw = build_sign_string(params, key).encode("utf-8")
    return hashlib.md5(raw).hexdigest().lower()


def verify_sign(params: Mapping[str, Any], claimed_sign: str, key: str) -> bool:
    if not claimed_sign:
        return False
    expected = build_sign(params, key)
    # bytes: compare_digest não aceita str com caracteres não-ASCII
    return secrets.compare_digest(expected.encode("utf-8"), str(claimed_sign).strip().encode("utf-8"))
