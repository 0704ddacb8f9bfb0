import asyncio
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Protocol

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.errors import PyMongoError

from pollster.models import Service


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="POLLSTER_", env_file=".env", extra="ignore")

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    storage_backend: str = "file"  # "file" or "mongodb"
    storage_path: str = "services.json"
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "pollster"

    tick_interval_seconds: float = 1.0  # How often to look for due services
    polling_interval_seconds: int = 60  # How long after a check a service is due again
    probe_timeout_seconds: float = 2.0
    probe_max_redirects: int = 5
    save_interval_seconds: float = 60.0

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# Tracked when nothing could be loaded
SEED_SERVICES = [
    ("google-ssl", "https://google.com/"),
    ("google", "http://google.com/"),
    ("Spotify", "http://www.spotify.com"),
    ("Centralway", "http://www.centralway.com"),
]


class PersistenceError(Exception):
    """Loading or saving services failed"""


class ServiceRepository(Protocol):
    async def load(self) -> List[Service]: ...

    async def dump(self, services: List[Service]) -> None: ...


def _parse_services(documents: list) -> List[Service]:
    try:
        return [Service.model_validate(doc) for doc in documents]
    except (ValidationError, TypeError) as e:
        raise PersistenceError(f"Invalid service document: {e}") from e


def _aside_suffix() -> str:
    return datetime.now().strftime("corrupt-%Y%m%d%H%M%S")


# JSON document on disk


class JsonFileRepository:
    """Keeps services in a JSON document: {"services": [...]}

    A document that cannot be loaded is renamed to `<name>.corrupt-<ts>`
    so later dumps never overwrite it. If it cannot be moved, dumps are
    refused instead.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self.writable = True

    def _read_document(self) -> List[Service]:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(document, dict) or not isinstance(document.get("services"), list):
            raise PersistenceError(f"{self.path} has no 'services' array")
        return _parse_services(document["services"])

    def _set_aside(self) -> None:
        aside = self.path.with_name(f"{self.path.name}.{_aside_suffix()}")
        try:
            os.replace(self.path, aside)
        except OSError as e:
            self.writable = False
            logger.error(f"Could not move {self.path} aside ({e}), saving is disabled")
            return
        logger.warning(f"Moved unreadable {self.path} to {aside}")

    def _read(self) -> List[Service]:
        if not self.path.exists():
            logger.info(f"No services file at {self.path}, starting empty")
            return []
        try:
            services = self._read_document()
        except PersistenceError:
            self._set_aside()
            raise
        self.writable = True
        return services

    def _write(self, services: List[Service]) -> None:
        if not self.writable:
            raise PersistenceError(f"Refusing to overwrite unreadable {self.path}")
        document = {"services": [service.to_document() for service in services]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            os.unlink(tmp_path)
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

    async def load(self) -> List[Service]:
        return await asyncio.to_thread(self._read)

    async def dump(self, services: List[Service]) -> None:
        await asyncio.to_thread(self._write, services)


# MongoDB


class MongoRepository:
    """Keeps services as documents of the `services` collection

    Invalid documents are moved to a `services_corrupt-<ts>` collection on
    load. If the collection could not be read or moved, dumps are refused
    until a later load succeeds.
    """

    def __init__(self, mongodb_url: str, db_name: str, client: AsyncIOMotorClient | None = None):
        self.client = client or AsyncIOMotorClient(mongodb_url)
        self.db = self.client[db_name]
        self.writable = True

    async def load(self) -> List[Service]:
        try:
            documents = []
            async for document in self.db.services.find().sort("_id", 1):
                document.pop("_id", None)
                documents.append(document)
        except PyMongoError as e:
            self.writable = False
            raise PersistenceError(f"Failed to load services from MongoDB: {e}") from e

        try:
            services = _parse_services(documents)
        except PersistenceError:
            await self._set_aside()
            raise
        self.writable = True
        return services

    async def _set_aside(self) -> None:
        aside = f"services_{_aside_suffix()}"
        try:
            await self.db.services.rename(aside)
        except PyMongoError as e:
            self.writable = False
            logger.error(f"Could not move services collection aside ({e}), saving is disabled")
            return
        logger.warning(f"Moved unreadable services collection to {aside}")

    async def dump(self, services: List[Service]) -> None:
        if not self.writable:
            raise PersistenceError("Refusing to overwrite unreadable services collection")
        documents = [service.to_document() for service in services]
        try:
            await self.db.services.delete_many({})
            if documents:
                await self.db.services.insert_many(documents)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to save services to MongoDB: {e}") from e


def create_repository(settings: Settings) -> ServiceRepository:
    if settings.storage_backend == "mongodb":
        logger.info(f"Using MongoDB storage at {settings.mongodb_url}/{settings.mongodb_db_name}")
        return MongoRepository(settings.mongodb_url, settings.mongodb_db_name)
    if settings.storage_backend == "file":
        logger.info(f"Using file storage at {settings.storage_path}")
        return JsonFileRepository(settings.storage_path)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
