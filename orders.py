from datetime import datetime
from typing import Dict, List, Optional, Set

import structlog
from pymongo import ReturnDocument

from database import create_document, oid, paginate, to_dict
from errors import AppError
from notifications import Notifier
from payloads import CreateOrderRequest, OrderItemIn, UpdateOrderStatusRequest
from schemas import Order, OrderItem, OrderStatus

logger = structlog.get_logger(__name__)

S = OrderStatus

# Used when the status policy is "strict". Setting the current status again is always allowed.
STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    S.PENDING_PAYMENT: {S.PAYMENT_CONFIRMED, S.CANCELLED},
    S.PAYMENT_CONFIRMED: {S.PREPARING, S.CANCELLED},
    S.PREPARING: {S.READY_FOR_PICKUP, S.SHIPPED, S.CANCELLED},
    S.READY_FOR_PICKUP: {S.DELIVERED, S.CANCELLED},
    S.SHIPPED: {S.DELIVERED, S.CANCELLED},
    S.DELIVERED: set(),
    S.CANCELLED: set(),
}

USER_SUMMARY = {"first_name": 1, "last_name": 1, "email": 1, "phone": 1}


def order_subtotal(items: List[dict]) -> float:
    return sum(item["price"] * item["quantity"] for item in items)


class OrderService:
    def __init__(self, db, notifier: Notifier, status_policy: str = "permissive"):
        self.db = db
        self.orders = db["order"]
        self.products = db["product"]
        self.users = db["user"]
        self.notifier = notifier
        self.status_policy = status_policy

    # -- creation -------------------------------------------------------

    def _snapshot(self, line: OrderItemIn) -> OrderItem:
        product = self.products.find_one({"_id": oid(line.product_id)})
        if not product:
            raise AppError(f"Product {line.product_id} not found", 404)
        if not product.get("is_active", True):
            raise AppError(f"Product {product['name']} is not available", 400)
        if product.get("stock", 0) < line.quantity:
            raise AppError(
                f"Insufficient stock for {product['name']}. Available: {product.get('stock', 0)}", 400
            )

        if product.get("price") != line.price:
            # The client price is what the customer agreed to at checkout; it is kept as is.
            logger.warning(
                "order.price_mismatch",
                product_id=line.product_id,
                client_price=line.price,
                catalog_price=product.get("price"),
            )

        images = product.get("images") or []
        return OrderItem(
            product_id=str(product["_id"]),
            name=product["name"],
            price=line.price,
            quantity=line.quantity,
            image=images[0] if images else "",
        )

    def _reserve(self, line: OrderItemIn) -> bool:
        """Decrement stock only if enough remains. False when the guard did not match."""
        updated = self.products.find_one_and_update(
            {"_id": oid(line.product_id), "is_active": True, "stock": {"$gte": line.quantity}},
            {"$inc": {"stock": -line.quantity}},
            return_document=ReturnDocument.AFTER,
        )
        return updated is not None

    def _release(self, lines: List[OrderItemIn]) -> None:
        for line in lines:
            self.products.update_one({"_id": oid(line.product_id)}, {"$inc": {"stock": line.quantity}})

    def create(self, user_id: str, payload: CreateOrderRequest) -> dict:
        items = [self._snapshot(line) for line in payload.items]

        subtotal = sum(item.price * item.quantity for item in items)
        shipping_cost = payload.shipping_cost or 0
        total_amount = subtotal + shipping_cost

        reserved: List[OrderItemIn] = []
        for line, item in zip(payload.items, items):
            if not self._reserve(line):
                self._release(reserved)
                current = self.products.find_one({"_id": oid(line.product_id)}, {"stock": 1}) or {}
                raise AppError(
                    f"Insufficient stock for {item.name}. Available: {current.get('stock', 0)}", 400
                )
            reserved.append(line)

        order = Order(
            user_id=user_id,
            items=items,
            shipping_method=payload.shipping_method,
            shipping_address=payload.shipping_address,
            total_amount=total_amount,
            shipping_cost=shipping_cost,
            order_status=OrderStatus.PENDING_PAYMENT,
        )
        try:
            doc = create_document(self.db, "order", order.model_dump(mode="json"))
        except Exception:
            self._release(reserved)
            raise

        created = to_dict(doc)
        logger.info("order.created", order_id=created["id"], user_id=user_id, total_amount=total_amount)

        customer = self.users.find_one({"_id": oid(user_id)}, USER_SUMMARY)
        if customer:
            self.notifier.order_placed(created, customer)
        else:
            logger.warning("order.notify_skipped", order_id=created["id"], reason="user not found")
        return created

    # -- reads ----------------------------------------------------------

    def _with_users(self, orders: List[dict]) -> List[dict]:
        ids = {o["user_id"] for o in orders if o.get("user_id")}
        users = {}
        if ids:
            cursor = self.users.find({"_id": {"$in": [oid(i) for i in ids]}}, USER_SUMMARY)
            users = {str(u["_id"]): to_dict(u) for u in cursor}
        for o in orders:
            o["user"] = users.get(o.get("user_id"))
        return orders

    def get(self, order_id: str, requester_id: Optional[str] = None) -> dict:
        """Fetch an order. When requester_id is given the order must belong to it."""
        doc = self.orders.find_one({"_id": oid(order_id)})
        if not doc:
            raise AppError("Order not found", 404)
        if requester_id is not None and doc.get("user_id") != requester_id:
            raise AppError("You do not have access to this order", 403)
        return self._with_users([to_dict(doc)])[0]

    def list_for_user(self, user_id: str, page: int = 1, limit: int = 10) -> dict:
        return paginate(self.db, "order", {"user_id": user_id}, page, limit)

    def list_all(self, page: int = 1, limit: int = 20, status: Optional[OrderStatus] = None) -> dict:
        query = {"order_status": status.value} if status else {}
        result = paginate(self.db, "order", query, page, limit)
        self._with_users(result["items"])
        return result

    # -- admin updates --------------------------------------------------

    def check_transition(self, current: OrderStatus, target: OrderStatus) -> None:
        if self.status_policy != "strict" or current == target:
            return
        if target not in STATUS_TRANSITIONS[current]:
            raise AppError(f"Cannot change order status from {current.value} to {target.value}", 400)

    def update_status(self, order_id: str, payload: UpdateOrderStatusRequest) -> dict:
        doc = self.orders.find_one({"_id": oid(order_id)})
        if not doc:
            raise AppError("Order not found", 404)
        self.check_transition(OrderStatus(doc["order_status"]), payload.order_status)

        updates = {"order_status": payload.order_status.value, "updated_at": datetime.utcnow()}
        if payload.admin_notes:
            updates["admin_notes"] = payload.admin_notes
        if payload.shipping_cost is not None:
            updates["shipping_cost"] = payload.shipping_cost
            updates["total_amount"] = order_subtotal(doc["items"]) + payload.shipping_cost

        updated = self.orders.find_one_and_update(
            {"_id": doc["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
        logger.info("order.status_updated", order_id=order_id, order_status=updates["order_status"])
        return self._with_users([to_dict(updated)])[0]

    def attach_payment_proof(self, order_id: str, user_id: str, proof_url: str) -> dict:
        doc = self.orders.find_one({"_id": oid(order_id)})
        if not doc:
            raise AppError("Order not found", 404)
        if doc.get("user_id") != user_id:
            raise AppError("You do not have access to this order", 403)
        updated = self.orders.find_one_and_update(
            {"_id": doc["_id"]},
            {"$set": {"payment_proof": proof_url, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return to_dict(updated)
