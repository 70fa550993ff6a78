"""Pytest fixtures: in-memory database, API client with fakes, login helpers."""

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from src.backoffice import dependencies, security
from src.database.models import Permission, Role, User
from src.database.postgres import PostgresDB
from src.database.redis import RedisCache
from src.integrations.gemini.agreement_editor import AgreementEditor
from src.integrations.telegram.notifier import TelegramNotifier

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass"


class FakeTelegram(TelegramNotifier):
    """Records outgoing Bot API calls instead of sending them."""

    def __init__(self):
        super().__init__(token="test-token", frontend_url="http://front.test")
        self.admin_chat_id = "999"
        self.sent = []
        self.answers = []

    async def send_message(self, chat_id, text, reply_markup=None):
        self.sent.append({"chat_id": str(chat_id), "text": text, "reply_markup": reply_markup})
        return True

    async def answer_callback_query(self, callback_query_id, text, show_alert=True):
        self.answers.append({"id": callback_query_id, "text": text})
        return True


class FakeModels:
    def __init__(self, owner):
        self.owner = owner

    def generate_content(self, model, contents, config):
        self.owner.calls.append({"model": model, "contents": contents, "config": config})
        return SimpleNamespace(text=self.owner.reply)


class FakeGenAIClient:
    """Stands in for `genai.Client`; answers every request with `reply`."""

    def __init__(self, reply=None):
        self.calls = []
        self.reply = reply if reply is not None else json.dumps(
            {
                "changes_description": "Deposit raised",
                "changes_description_ru": "Депозит увеличен",
                "changed_fields": ["Section 4"],
                "structure_after": {
                    "title": "LEASE AGREEMENT",
                    "date": "2025-03-05",
                    "city": "Phuket",
                    "nodes": [{"id": "1", "type": "section", "content": "4. DEPOSIT", "children": [
                        {"id": "2", "type": "paragraph", "content": "Deposit is 50000 THB"}
                    ]}],
                },
                "database_updates": {"deposit_amount": 50000},
                "ai_response": "Готово",
            }
        )
        self.models = FakeModels(self)


@pytest.fixture
def db():
    """In-memory PostgresDB stub for tests."""
    return PostgresDB()


@pytest.fixture
def cache():
    return RedisCache()


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def genai_client():
    return FakeGenAIClient()


@pytest.fixture
def client(db, cache, telegram, genai_client, tmp_path, monkeypatch):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("FRONTEND_URL", "http://front.test")
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "hook-secret")

    from src.api.main import app

    editor = AgreementEditor(client=genai_client)
    app.dependency_overrides[dependencies.get_db] = lambda: db
    app.dependency_overrides[dependencies.get_cache] = lambda: cache
    app.dependency_overrides[dependencies.get_telegram] = lambda: telegram
    app.dependency_overrides[dependencies.get_ai_editor] = lambda: editor
    yield TestClient(app)
    app.dependency_overrides.clear()


def login(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['accessToken']}"}


def create_user(db, username, password="secret123", permissions=(), is_super_admin=False):
    with db.session() as s:
        user = User(
            username=username,
            password_hash=security.hash_password(password),
            full_name=username.title(),
            is_super_admin=is_super_admin,
        )
        if permissions:
            perms = s.execute(select(Permission).where(Permission.permission_name.in_(list(permissions)))).scalars().all()
            role = Role(role_name=f"{username}-role", permissions=perms)
            s.add(role)
            user.roles = [role]
        s.add(user)
        s.flush()
        return user.id


@pytest.fixture
def admin_headers(client, db):
    db.ensure_super_admin(ADMIN_USERNAME, security.hash_password(ADMIN_PASSWORD), full_name="Admin")
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def make_user_headers(client, db):
    """Log in as a fresh non-admin user holding only the given permissions."""

    def _make(username, permissions=()):
        create_user(db, username, permissions=permissions)
        return login(client, username, "secret123")

    return _make
