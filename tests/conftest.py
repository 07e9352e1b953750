from decimal import Decimal

import pytest

from app import create_app
from config import Settings
from db import LedgerStore, reset_db

SIGN_KEY = "test-sign-key"


@pytest.fixture
def settings():
    return Settings(
        pay_mch_id="1221",
        pay_sign_key=SIGN_KEY,
        pay_api_base="https://pay.example.com",
        pay_notify_url="https://app.example.com/api/pay/callback",
        pay_return_url="https://app.example.com/pay/return",
        pay_per_use_price=Decimal("9.90"),
        free_usage_limit=3,
    )


@pytest.fixture
def store():
    reset_db()
    return LedgerStore()


@pytest.fixture
def app(settings, store):
    flask_app = create_app(settings, store)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


class FakeCompletions:
    def __init__(self, replies):
        # cada item: str (conteúdo) ou Exception (levantada)
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = type("Message", (), {"content": reply})()
        choice = type("Choice", (), {"message": message})()
        return type("Completion", (), {"choices": [choice]})()


class FakeOpenAI:
    def __init__(self, replies):
        self.completions = FakeCompletions(replies)
        self.chat = type("Chat", (), {"completions": self.completions})()


@pytest.fixture
def fake_openai():
    return FakeOpenAI
