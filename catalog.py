import re
import unicodedata
from datetime import datetime
from typing import Iterable, List, Optional

import structlog
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, oid, paginate, to_dict
from errors import AppError
from payloads import CategoryIn, CategoryUpdate, ProductIn, ProductUpdate
from schemas import Category

logger = structlog.get_logger(__name__)

SORTS = {
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
}


def slugify(value: str) -> str:
    text = unicodedata.normalize("NFD", value.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^\w\s-]", "", text)
    return re.sub(r"\s+", "-", text.strip())


class CategoryService:
    def __init__(self, db):
        self.db = db
        self.collection = db["category"]

    def sync_from_products(self, labels: Optional[Iterable[str]] = None) -> List[str]:
        """
        Create a Category for every product label that has none yet.

        With no labels given, every distinct label on the product collection is
        reconciled. Returns the names of the categories created.
        """
        if labels is None:
            labels = self.db["product"].distinct("category")

        created = []
        for label in labels:
            name = (label or "").strip()
            slug = slugify(name)
            if not slug:
                continue
            # Labels differing only in case or accents share one category
            if self.collection.find_one({"slug": slug}):
                continue
            try:
                doc = Category(name=name, slug=slug, description=f"Category {name}")
                create_document(self.db, "category", doc)
            except ValidationError as e:
                logger.warning("category.sync_skipped", label=name, reason=e.errors()[0].get("msg"))
                continue
            except DuplicateKeyError:
                # Created concurrently under the same slug
                continue
            created.append(name)

        if created:
            logger.info("category.synced", created=created)
        return created

    def list(self, include_inactive: bool = False) -> List[dict]:
        query = {} if include_inactive else {"is_active": True}
        return [to_dict(c) for c in get_documents(self.db, "category", query, sort=[("name", ASCENDING)])]

    def list_light(self) -> List[dict]:
        cursor = self.collection.find({"is_active": True}, {"name": 1, "slug": 1}).sort("name", ASCENDING)
        return [to_dict(c) for c in cursor]

    def get(self, category_id: str) -> dict:
        doc = self.collection.find_one({"_id": oid(category_id)})
        if not doc:
            raise AppError("Category not found", 404)
        return to_dict(doc)

    def get_by_slug(self, slug: str) -> dict:
        doc = self.collection.find_one({"slug": slug})
        if not doc:
            raise AppError("Category not found", 404)
        return to_dict(doc)

    def create(self, payload: CategoryIn) -> dict:
        doc = Category(name=payload.name, slug=slugify(payload.name), description=payload.description)
        return to_dict(create_document(self.db, "category", doc))

    def update(self, category_id: str, payload: CategoryUpdate) -> dict:
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in updates:
            updates["slug"] = slugify(updates["name"])
        updates["updated_at"] = datetime.utcnow()
        res = self.collection.update_one({"_id": oid(category_id)}, {"$set": updates})
        if res.matched_count == 0:
            raise AppError("Category not found", 404)
        return self.get(category_id)

    def delete(self, category_id: str) -> None:
        res = self.collection.delete_one({"_id": oid(category_id)})
        if res.deleted_count == 0:
            raise AppError("Category not found", 404)


class ProductService:
    def __init__(self, db, categories: CategoryService):
        self.db = db
        self.collection = db["product"]
        self.categories = categories

    def list(self, category: Optional[str] = None, search: Optional[str] = None,
             min_price: Optional[float] = None, max_price: Optional[float] = None,
             featured: Optional[bool] = None, is_active: Optional[bool] = None,
             page: int = 1, limit: int = 12, sort: Optional[str] = None) -> dict:
        query: dict = {}
        if category:
            query["category"] = category
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"description": pattern}, {"category": pattern}]
        if min_price is not None or max_price is not None:
            query["price"] = {}
            if min_price is not None:
                query["price"]["$gte"] = min_price
            if max_price is not None:
                query["price"]["$lte"] = max_price
        if featured is not None:
            query["featured"] = featured
        if is_active is not None:
            query["is_active"] = is_active

        return paginate(self.db, "product", query, page, limit, sort=SORTS.get(sort))

    def featured(self, limit: int = 6) -> List[dict]:
        docs = get_documents(self.db, "product", {"featured": True, "is_active": True},
                             limit=limit, sort=[("created_at", DESCENDING)])
        return [to_dict(d) for d in docs]

    def get(self, product_id: str) -> dict:
        doc = self.collection.find_one({"_id": oid(product_id)})
        if not doc:
            raise AppError("Product not found", 404)
        return to_dict(doc)

    def create(self, payload: ProductIn) -> dict:
        doc = create_document(self.db, "product", payload)
        self.categories.sync_from_products([payload.category])
        return to_dict(doc)

    def update(self, product_id: str, payload: ProductUpdate) -> dict:
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        updates["updated_at"] = datetime.utcnow()
        res = self.collection.update_one({"_id": oid(product_id)}, {"$set": updates})
        if res.matched_count == 0:
            raise AppError("Product not found", 404)
        if "category" in updates:
            self.categories.sync_from_products([updates["category"]])
        return self.get(product_id)

    def delete(self, product_id: str) -> None:
        res = self.collection.delete_one({"_id": oid(product_id)})
        if res.deleted_count == 0:
            raise AppError("Product not found", 404)
