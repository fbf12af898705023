import json
import os
import tempfile
from pathlib import Path

# Settings are read at import time, so point the engine at a scratch database first.
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'storefront.db'}"
os.environ["INSTANCE_ID"] = "test-instance"

import pytest

from storefront.app import create_app
from storefront.common import database, redis_client


class FakePubSub:
    def __init__(self, redis):
        self.redis = redis
        self.channels = set()
        self.closed = False

    async def subscribe(self, channel):
        self.channels.add(channel)

    async def unsubscribe(self, channel):
        self.channels.discard(channel)

    async def get_message(self, timeout=None):
        for i, (channel, data) in enumerate(self.redis.queue):
            if channel in self.channels:
                del self.redis.queue[i]
                return {"type": "message", "channel": channel, "data": data}
        return None

    async def aclose(self):
        self.closed = True


class FakeRedis:
    """Records published messages and replays them to pubsub readers."""

    def __init__(self):
        self.published = []
        self.queue = []

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        self.queue.append((channel, message))
        return 1

    def pubsub(self, ignore_subscribe_messages=False):
        return FakePubSub(self)

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(redis_client, "get_redis", _get_redis)
    return fake


@pytest.fixture(autouse=True)
async def db(fake_redis):
    await database.drop_db()
    await database.init_db()
    yield
    await database.engine.dispose()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
async def customer():
    return await database.insert_user(email="alice@example.com", name="Alice")


@pytest.fixture
async def other_customer():
    return await database.insert_user(email="bob@example.com", name="Bob")


@pytest.fixture
async def admin():
    user_id = await database.insert_user(email="admin@example.com", name="Admin")
    await database.upsert_role(user_id, "admin")
    return user_id


@pytest.fixture
def make_product():
    async def _make(**overrides):
        fields = {
            "name": "Widget",
            "description": "A widget",
            "price": 10.0,
            "stock": 5,
            "is_active": True,
        }
        fields.update(overrides)
        return await database.insert_product(fields)

    return _make
