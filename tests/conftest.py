"""
Shared fixtures for the OpaY wallet bot tests

FakeBackend stands in for BackendClient: it answers from per-table rows and
per-function RPC payloads configured by the test, and records every call so
tests can assert on what reached the backend.
"""

import logging
from io import BytesIO
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from caching.simple_cache import settings_cache
from models import ReceiptFile, UserSession

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

FIXED_NOW = datetime(2026, 3, 14, 10, 30, tzinfo=timezone.utc)


def png_bytes(size=(8, 8), color="white") -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeBackend:
    """In-memory BackendClient double"""

    def __init__(self):
        self.base_url = "https://backend.test"
        self.tables: Dict[str, Any] = {}
        self.rpc_results: Dict[str, Any] = {}
        self.counts: Dict[str, Any] = {}
        self.function_results: Dict[str, Any] = {}
        self.user: Optional[Dict[str, Any]] = None
        self.calls: List[tuple] = []
        self.inserted: List[tuple] = []
        self.updated: List[tuple] = []
        self.uploads: List[tuple] = []
        self.failing: Dict[str, Exception] = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise self.failing[operation]

    def _rows(self, table: str, filters: Optional[Dict[str, str]]) -> List[Dict[str, Any]]:
        rows = self.tables.get(table, [])
        if callable(rows):
            rows = rows(filters or {})
        return list(rows)

    def with_token(self, access_token):
        return self

    async def select(self, table, filters=None, columns="*", order=None, limit=None):
        self.calls.append(("select", table, filters or {}))
        self._maybe_fail("select")
        rows = self._rows(table, filters)
        return rows[:limit] if limit is not None else rows

    async def select_one(self, table, filters=None, columns="*", order=None):
        rows = await self.select(table, filters, columns=columns, order=order, limit=1)
        return rows[0] if rows else None

    async def count(self, table, filters=None):
        self.calls.append(("count", table, filters or {}))
        self._maybe_fail("count")
        value = self.counts.get(table, 0)
        return value(filters or {}) if callable(value) else value

    async def insert(self, table, rows, upsert=False, on_conflict=None):
        self.calls.append(("insert", table, rows))
        self._maybe_fail("insert")
        self.inserted.append((table, rows))
        row = dict(rows) if isinstance(rows, dict) else dict(rows[0])
        row.setdefault("id", f"{table}-1")
        row.setdefault("status", "pending")
        return [row]

    async def update(self, table, values, filters):
        self.calls.append(("update", table, values, filters))
        self._maybe_fail("update")
        self.updated.append((table, values, filters))
        existing = self._rows(table, filters)
        return [{**row, **values} for row in existing]

    async def rpc(self, function, params=None):
        self.calls.append(("rpc", function, params or {}))
        self._maybe_fail(f"rpc:{function}")
        result = self.rpc_results.get(function)
        return result(params or {}) if callable(result) else result

    async def upload(self, bucket, path, content, content_type, upsert=False):
        self.calls.append(("upload", bucket, path))
        self._maybe_fail("upload")
        self.uploads.append((bucket, path, content, content_type))
        return path

    def public_url(self, bucket, path):
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    async def invoke(self, function, body=None):
        self.calls.append(("invoke", function, body or {}))
        self._maybe_fail(f"invoke:{function}")
        return self.function_results.get(function)

    async def get_user(self):
        return self.user

    def rpc_calls(self, function: str) -> List[Dict[str, Any]]:
        return [call[2] for call in self.calls if call[0] == "rpc" and call[1] == function]


def admin_role(params):
    return params.get("_user_id") == "admin-1"


@pytest.fixture
def fake_backend():
    backend = FakeBackend()
    backend.rpc_results["has_role"] = admin_role
    return backend


@pytest.fixture(autouse=True)
def clear_settings_cache():
    settings_cache.clear()
    yield
    settings_cache.clear()


@pytest.fixture
def receipt():
    return ReceiptFile(filename="receipt.png", content=png_bytes(), content_type="image/png")


@pytest.fixture
def user_session():
    return UserSession(user_id="user-1", access_token="token-1", full_name="Amina B", phone="0661234567")


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


class MovableClock:
    """Clock whose time the test can move: clock.now = ..."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def movable_clock():
    return MovableClock(FIXED_NOW)


@pytest.fixture
def png_factory():
    return png_bytes


@pytest.fixture
def telegram_context(user_session):
    """ContextTypes.DEFAULT_TYPE stand-in with a linked session"""
    context = Mock()
    context.user_data = {"session": user_session}
    context.args = []
    context.application.bot_data = {}
    context.bot = AsyncMock()
    return context


@pytest.fixture
def telegram_update():
    update = Mock()
    update.effective_user.id = 4242
    update.effective_message.reply_text = AsyncMock()
    update.effective_message.reply_photo = AsyncMock()
    update.effective_message.photo = []
    update.effective_message.document = None
    update.callback_query = None
    return update
