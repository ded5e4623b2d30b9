from datetime import datetime

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import to_dict
from payloads import StoreConfigIn
from schemas import StoreConfig

# Fixed key of the single settings document
STORE_CONFIG_ID = "store"


class StoreConfigService:
    def __init__(self, db):
        self.db = db
        self.collection = db["storeconfig"]

    def _upsert(self, update: dict) -> dict:
        try:
            return self.collection.find_one_and_update(
                {"_id": STORE_CONFIG_ID}, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Another request inserted it first; apply the update to that document
            return self.collection.find_one_and_update(
                {"_id": STORE_CONFIG_ID}, update, return_document=ReturnDocument.AFTER
            )

    def get(self) -> dict:
        """Return the store settings, creating them with defaults on first read."""
        now = datetime.utcnow()
        defaults = StoreConfig().model_dump(mode="json")
        doc = self._upsert({"$setOnInsert": {**defaults, "created_at": now, "updated_at": now}})
        return to_dict(doc)

    def update(self, payload: StoreConfigIn) -> dict:
        # Omitted text blocks fall back to their defaults
        values = StoreConfig(**payload.model_dump(exclude_none=True)).model_dump(mode="json")
        now = datetime.utcnow()
        values["updated_at"] = now
        doc = self._upsert({"$set": values, "$setOnInsert": {"created_at": now}})
        return to_dict(doc)
