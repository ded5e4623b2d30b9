import re
from datetime import datetime
from typing import Optional

from database import oid, paginate, to_dict
from errors import AppError
from payloads import UserUpdateRequest
from schemas import OrderStatus

HIDDEN = {"password_hash"}


def _strip(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in HIDDEN}


class UserService:
    def __init__(self, db):
        self.db = db
        self.users = db["user"]
        self.orders = db["order"]

    def stats(self, user_id: str) -> dict:
        """Order totals for a user, cancelled orders excluded."""
        match = {"user_id": user_id, "order_status": {"$ne": OrderStatus.CANCELLED.value}}
        rows = list(self.orders.aggregate([
            {"$match": match},
            {"$group": {
                "_id": None,
                "total_orders": {"$sum": 1},
                "total_spent": {"$sum": "$total_amount"},
                "last_order_date": {"$max": "$created_at"},
                "first_order_date": {"$min": "$created_at"},
            }},
        ]))
        if not rows:
            return {"total_spent": 0, "total_orders": 0, "completed_orders": 0}

        row = rows[0]
        completed = self.orders.count_documents({"user_id": user_id, "order_status": OrderStatus.DELIVERED.value})
        return {
            "total_spent": row.get("total_spent") or 0,
            "total_orders": row.get("total_orders") or 0,
            "completed_orders": completed,
            "last_order_date": row.get("last_order_date"),
            "first_order_date": row.get("first_order_date"),
        }

    def list(self, search: Optional[str] = None, is_admin: Optional[bool] = None,
             is_active: Optional[bool] = None, page: int = 1, limit: int = 20) -> dict:
        query: dict = {}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"first_name": pattern}, {"last_name": pattern}, {"email": pattern}]
        if is_admin is not None:
            query["is_admin"] = is_admin
        if is_active is not None:
            query["is_active"] = is_active

        result = paginate(self.db, "user", query, page, limit)
        result["items"] = [{**_strip(u), **self.stats(u["id"])} for u in result["items"]]
        return result

    def get(self, user_id: str) -> dict:
        doc = self.users.find_one({"_id": oid(user_id)})
        if not doc:
            raise AppError("User not found", 404)
        user = _strip(to_dict(doc))
        return {**user, **self.stats(user["id"])}

    def orders_of(self, user_id: str, page: int = 1, limit: int = 10) -> dict:
        return paginate(self.db, "order", {"user_id": user_id}, page, limit)

    def update(self, user_id: str, admin_id: str, payload: UserUpdateRequest) -> dict:
        doc = self.users.find_one({"_id": oid(user_id)})
        if not doc:
            raise AppError("User not found", 404)
        if user_id == admin_id and payload.is_active is False:
            raise AppError("You cannot deactivate your own account", 400)
        if user_id == admin_id and payload.is_admin is False:
            raise AppError("You cannot remove your own administrator permissions", 400)

        updates = payload.model_dump(exclude_none=True)
        updates["updated_at"] = datetime.utcnow()
        self.users.update_one({"_id": doc["_id"]}, {"$set": updates})
        return _strip(to_dict(self.users.find_one({"_id": doc["_id"]})))
