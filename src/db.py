import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from activity_schema import ActivityEvent, Heartbeat
from constants import MONGO_DB, MONGO_URI
from delivery import DeliveryAdapter, DeliveryError

logger = logging.getLogger(__name__)


class MongoDelivery(DeliveryAdapter):
    """MongoDB sink that stores activity events and heartbeats as documents."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
        events_collection_name: str = "activity_events",
        heartbeats_collection_name: str = "heartbeats",
    ) -> None:
        self.uri = uri or MONGO_URI
        self.db_name = db_name or MONGO_DB
        self.events_collection_name = events_collection_name
        self.heartbeats_collection_name = heartbeats_collection_name
        self._client: Optional[MongoClient] = None
        self._collections: Dict[str, Collection] = {}
        self._healthy: Optional[bool] = None

    @property
    def enabled(self) -> bool:
        """Return True if MongoDB connectivity is available."""
        return self._ensure_connection() is not None

    def deliver_event(self, event: ActivityEvent) -> None:
        self._insert(self.events_collection_name, event.to_payload())
        logger.debug("Stored event for %s (%ss)", event.entity, event.duration)

    def deliver_heartbeat(self, heartbeat: Heartbeat) -> None:
        self._insert(self.heartbeats_collection_name, heartbeat.to_payload())

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._collections = {}

    def _insert(self, collection_name: str, payload: Dict) -> None:
        collection = self._collection(collection_name)
        if collection is None:
            raise DeliveryError("Mongo sink is unavailable.")
        document = {**payload}
        document.setdefault("created_at", datetime.now(timezone.utc))
        try:
            collection.insert_one(document)
        except PyMongoError as exc:  # pragma: no cover - network specific
            raise DeliveryError(f"Failed to insert into {collection_name}: {exc}") from exc

    def _collection(self, name: str) -> Optional[Collection]:
        if self._ensure_connection() is None:
            return None
        if name not in self._collections:
            self._collections[name] = self._client[self.db_name][name]
        return self._collections[name]

    def _ensure_connection(self) -> Optional[MongoClient]:
        if self._client is not None:
            return self._client

        if not self.uri:
            if self._healthy is None:
                logger.info("Mongo sink disabled: EDITSCOPE_MONGO_URI is not set.")
                self._healthy = False
            return None

        try:
            client = MongoClient(self.uri, serverSelectionTimeoutMS=4000)
            client.admin.command("ping")
        except PyMongoError as exc:  # pragma: no cover
            logger.warning("Unable to connect Mongo sink: %s", exc)
            self._healthy = False
            return None

        self._client = client
        self._healthy = True
        logger.info("Mongo sink connected to %s", self.db_name)
        return self._client


__all__ = ["MongoDelivery"]
