"""
Shared fixtures: an in-memory Mongo (mongomock-motor) bound to Beanie and an
httpx client talking to the FastAPI app through ASGITransport.
"""
import copy

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.config import Settings
from app.database import MongoConnection
from main import create_app


@pytest.fixture()
def test_settings():
    settings = Settings()
    settings.mongodb_uri = "mongodb://localhost:27017/appbuilder_test"
    settings.connect_retries = 1
    settings.retry_delay_seconds = 0
    return settings


@pytest_asyncio.fixture()
async def mongo(test_settings):
    connection = MongoConnection(test_settings, client=AsyncMongoMockClient())
    await connection.connect()
    yield connection
    connection.close()


@pytest_asyncio.fixture()
async def app(mongo):
    return create_app(mongo)


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Sample payloads ─────────────────────────────────────

SAMPLE_PROJECT = {
    "name": "Clinic Scheduler",
    "description": "Appointment booking for small clinics",
    "requirements": {
        "appName": "Clinic Scheduler",
        "entities": ["Patient", "Appointment", "Doctor"],
        "roles": ["Admin", "Doctor", "Receptionist"],
        "features": ["Calendar view", "SMS reminders"],
        "originalPrompt": "Build me an app to book clinic appointments",
    },
    "analytics": {
        "aiModel": "gpt-4o-mini",
        "tokensUsed": 1200,
        "responseTime": 850,
    },
    "metadata": {
        "category": "healthcare",
        "tags": ["clinic", "booking", "clinic"],
    },
}


def make_payload(**overrides) -> dict:
    payload = copy.deepcopy(SAMPLE_PROJECT)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            payload[key].update(value)
        else:
            payload[key] = value
    return payload


@pytest.fixture()
def create_project(client):
    async def _create(**overrides) -> dict:
        resp = await client.post("/api/projects", json=make_payload(**overrides))
        assert resp.status_code == 201, resp.text
        return resp.json()["project"]
    return _create
