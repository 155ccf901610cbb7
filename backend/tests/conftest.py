import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

# Must be set before tour_admin.core.rate_limit reads its settings
os.environ.setdefault("ENABLE_RATE_LIMITING", "false")
os.environ.setdefault("LOG_FILE", "")

import pytest
import pytest_asyncio

from tour_admin.core.security import IdentityProvider
from tour_admin.core.settings import Settings
from tour_admin.db.crud import DocumentStore
from tour_admin.db.session import DatabaseManager

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "secret123"


def make_settings(**overrides) -> Settings:
    values = {
        "DB_URL": "sqlite://",
        "LOG_FILE": "",
        "JWT_SECRET": "test-secret",
        "GOOGLE_TRANSLATE_API_KEY": "",
        "ENABLE_RATE_LIMITING": False,
    }
    values.update(overrides)
    return Settings(**values)


class TickingClock:
    """Each call returns a moment one second after the previous one"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeTranslateClient:
    """Stands in for the Google client: prefixes the target code, records every call"""

    def __init__(self, fail_languages=(), detected: Optional[str] = None, fail_detect: bool = False):
        self.fail_languages = set(fail_languages)
        self.detected = detected
        self.fail_detect = fail_detect
        self.calls: List[tuple] = []
        self.detect_calls: List[str] = []

    async def detect(self, text: str) -> Optional[str]:
        self.detect_calls.append(text)
        if self.fail_detect:
            raise RuntimeError("detect unavailable")
        return self.detected

    async def translate(self, text: str, target: str, source: Optional[str] = None) -> str:
        self.calls.append((text, target, source))
        if target in self.fail_languages:
            raise RuntimeError(f"{target} unavailable")
        return f"[{target}] {text}"


@pytest_asyncio.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def store(db):
    return DocumentStore(db, clock=TickingClock())


@pytest.fixture
def fake_translate():
    return FakeTranslateClient()


# ===== helpers for API tests against a file database =====

def run_with_store(settings: Settings, action):
    """Run ``action(store, identity)`` on its own event loop, outside the app"""
    async def run():
        manager = DatabaseManager(settings)
        await manager.initialize()
        try:
            store = DocumentStore(manager)
            return await action(store, IdentityProvider(store, settings))
        finally:
            await manager.close()

    return asyncio.run(run())


def seed_admin(settings: Settings, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD):
    async def action(store, identity):
        account = await identity.create_account(email, password, display_name="Admin")
        await identity.grant_admin(account)
        return account

    return run_with_store(settings, action)


def seed_documents(settings: Settings, collection: str, documents: List[Dict[str, Any]],
                   start: Optional[datetime] = None) -> List[str]:
    """Store documents with strictly increasing creation times; returns their ids"""
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    async def action(store, identity):
        ids = []
        for i, data in enumerate(documents):
            snapshot = await store.add(collection, data, created_at=start + timedelta(minutes=i))
            ids.append(snapshot.id)
        return ids

    return run_with_store(settings, action)


@pytest.fixture
def api_settings(tmp_path):
    return make_settings(
        DB_URL=f"sqlite:///{tmp_path / 'admin.db'}",
        MEDIA_ROOT=str(tmp_path / "media"),
        MEDIA_BASE_URL="http://testserver/media",
    )


@pytest.fixture
def client(api_settings, fake_translate):
    from fastapi.testclient import TestClient

    from tour_admin.core.context import get_translator
    from tour_admin.core.translation import TranslationPipeline
    from tour_admin.main import create_app

    seed_admin(api_settings)
    app = create_app(api_settings)
    pipeline = TranslationPipeline(fake_translate, detect_language=False)
    app.dependency_overrides[get_translator] = lambda: pipeline

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post(
        "/api/v1/auth/login",
        data={"username": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
