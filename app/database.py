import asyncio
from typing import Optional
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
from pymongo.uri_parser import parse_uri

from app.config import Settings, settings as default_settings
from app.models.analytics import AnalyticsSnapshot
from app.models.page_view import PageView
from app.models.project import Project
from app.utils.exceptions import PersistenceError
from app.utils.logger import logger

DOCUMENT_MODELS = [Project, AnalyticsSnapshot, PageView]


class MongoConnection:
    """
    Owns the process-wide Motor client. Created once at startup (see the
    lifespan in main.py) and handed to request handlers through app.state.
    """

    def __init__(self, settings: Settings = default_settings, client: Optional[AsyncIOMotorClient] = None):
        self.settings = settings
        self.client = client
        self.db = None
        self.initialized = False

    def _make_client(self) -> AsyncIOMotorClient:
        return AsyncIOMotorClient(
            self.settings.mongodb_uri,
            maxPoolSize=self.settings.max_pool_size,
            serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
            socketTimeoutMS=self.settings.socket_timeout_ms,
        )

    def _database(self):
        # Fall back to MONGODB_DB when the URI names no database
        try:
            name = parse_uri(self.settings.mongodb_uri).get("database")
        except (PyMongoError, ValueError):
            name = None
        return self.client.get_database(name or self.settings.mongodb_db)

    async def connect(self):
        if self.initialized:
            return

        attempts = max(self.settings.connect_retries, 1)
        for attempt in range(1, attempts + 1):
            try:
                if self.client is None:
                    self.client = self._make_client()
                self.db = self._database()
                await init_beanie(database=self.db, document_models=DOCUMENT_MODELS)
                self.initialized = True
                logger.info(f"MongoDB connected (database: {self.db.name})")
                return
            except PyMongoError as e:
                logger.error(f"MongoDB connection attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(self.settings.retry_delay_seconds)

        raise PersistenceError("Could not connect to MongoDB")

    async def ping(self) -> str:
        if not self.initialized:
            return "disconnected"
        try:
            await self.db.command("ping")
            return "connected"
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return "disconnected"

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.initialized = False
