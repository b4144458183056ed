"""
Order engine

Checkout turns a cart into an immutable order, decrementing stock line by
line. Stock moves through conditional `$inc` updates, so a line only
decrements when enough stock is left at that instant; if a later step fails
the earlier decrements are put back before the error propagates.

Order status follows ORDER_TRANSITIONS. Every status write appends one
entry to `status_history`, which is never edited except by the legacy
status migration.
"""

import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from pymongo import ReturnDocument

from auth import AuthUser, get_current_user, require_admin, require_customer
from cart import compute_totals
from database import create_document, get_db, now_utc, oid, pagination, parse_sort, serialize_doc
from errors import EmptyCart, Forbidden, IllegalStatusTransition, InsufficientStock, NotFound
from lifecycle import check_transition, history_entry
from notifications import notify_status_change
from schemas import Order as OrderSchema, OrderItem, Payment, PaymentMethod, ShippingAddress, Tracking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

ORDER_TRANSITIONS = {
    "pending": frozenset({"in-progress", "ready-for-pickup", "cancelled"}),
    "in-progress": frozenset({"ready-for-pickup", "cancelled"}),
    "ready-for-pickup": frozenset(),
    "cancelled": frozenset(),
}

LEGACY_STATUS_MAP = {
    "confirmed": "in-progress",
    "processing": "in-progress",
    "shipped": "ready-for-pickup",
    "out-for-delivery": "ready-for-pickup",
    "delivered": "ready-for-pickup",
    "refunded": "cancelled",
}


class CreateOrderRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    notes: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    status: str
    note: Optional[str] = None


class UpdateTrackingRequest(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None

# --------------------- Numbers ---------------------

def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    return f"ORD{now:%y%m%d}{random.randint(0, 9999):04d}"


def generate_tracking_number(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    return f"TRK{now:%y%m%d}{random.randint(0, 99999):05d}"

# --------------------- Stock ---------------------

def _take_stock(database, product_id: str, quantity: int) -> dict:
    product = database["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFound("Product")
    res = database["product"].update_one(
        {"_id": product["_id"], "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}},
    )
    if res.matched_count == 0:
        raise InsufficientStock(product.get("name"))
    return product


def restore_stock(database, items: List[dict]) -> None:
    for item in items:
        res = database["product"].update_one(
            {"_id": oid(item["product_id"])},
            {"$inc": {"stock": item["quantity"]}},
        )
        if res.matched_count == 0:
            logger.warning("Product %s is gone, %s units not restored", item["product_id"], item["quantity"])

# --------------------- Engine ---------------------

def create_order(database, user_id: str, shipping_address: ShippingAddress,
                 payment_method: str = "cod", notes: Optional[str] = None) -> dict:
    cart = database["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise EmptyCart()

    taken: List[dict] = []
    try:
        order_items = []
        for line in cart["items"]:
            product = _take_stock(database, line["product_id"], line["quantity"])
            taken.append(line)
            order_items.append(OrderItem(
                product_id=line["product_id"],
                name=product.get("name"),
                quantity=line["quantity"],
                price=line["price"],
                subtotal=round(line["price"] * line["quantity"], 2),
            ))

        now = now_utc()
        paid = payment_method != "cod"
        order = OrderSchema(
            user_id=user_id,
            order_number=generate_order_number(now),
            items=order_items,
            subtotal=cart["subtotal"],
            tax=cart["tax"],
            shipping_cost=cart["shipping_cost"],
            total_amount=cart["total_amount"],
            status="pending",
            status_history=[history_entry("pending", "Order placed")],
            payment=Payment(
                method=payment_method,
                status="completed" if paid else "pending",
                paid_at=now if paid else None,
            ),
            shipping_address=shipping_address,
            tracking=Tracking(),
            notes=notes,
        )
        order_id = create_document(database, "order", order)
    except Exception:
        if taken:
            logger.warning("Checkout for user %s failed, restoring stock for %d lines", user_id, len(taken))
            restore_stock(database, taken)
        raise

    database["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {"items": [], **compute_totals([]), "updated_at": now_utc()}},
    )
    logger.info("Order %s placed by user %s", order.order_number, user_id)
    return database["order"].find_one({"_id": oid(order_id)})


def find_order(database, order_id: str) -> dict:
    order = database["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise NotFound("Order")
    return order


def get_order(database, order_id: str, user: AuthUser) -> dict:
    order = find_order(database, order_id)
    if not user.is_admin and order["user_id"] != user.id:
        raise Forbidden("Not authorized to access this order")
    return order


def _write_status(database, order: dict, status: str, note: str) -> Optional[dict]:
    """Conditional on the status `order` was read with. Returns None when another write got there first."""
    return database["order"].find_one_and_update(
        {"_id": order["_id"], "status": order["status"]},
        {
            "$set": {"status": status, "updated_at": now_utc()},
            "$push": {"status_history": history_entry(status, note)},
        },
        return_document=ReturnDocument.AFTER,
    )


def update_status(database, order_id: str, status: str, note: Optional[str] = None) -> dict:
    migrate_legacy_statuses(database)
    status = LEGACY_STATUS_MAP.get(status, status)
    order = find_order(database, order_id)
    current = order["status"]
    check_transition(ORDER_TRANSITIONS, current, status)
    updated = _write_status(database, order, status, note or "")
    if updated is None:
        raise IllegalStatusTransition(f"Order {order['order_number']} is no longer {current}")
    if status == "cancelled" and current != "cancelled":
        restore_stock(database, order["items"])
    logger.info("Order %s: %s -> %s", order["order_number"], current, status)
    return updated


def cancel_order(database, order_id: str, user: AuthUser) -> dict:
    order = find_order(database, order_id)
    if not user.is_admin and order["user_id"] != user.id:
        raise Forbidden("Not authorized to cancel this order")
    if order["status"] != "pending":
        raise IllegalStatusTransition("Can only cancel pending orders")
    updated = _write_status(database, order, "cancelled", "Order cancelled by user")
    if updated is None:
        raise IllegalStatusTransition("Can only cancel pending orders")
    restore_stock(database, order["items"])
    logger.info("Order %s cancelled by %s", order["order_number"], user.id)
    return updated


def update_tracking(database, order_id: str, tracking_number: Optional[str] = None,
                    carrier: Optional[str] = None, estimated_delivery: Optional[datetime] = None) -> dict:
    order = find_order(database, order_id)
    return database["order"].find_one_and_update(
        {"_id": order["_id"]},
        {"$set": {
            "tracking.tracking_number": tracking_number or generate_tracking_number(),
            "tracking.carrier": carrier,
            "tracking.estimated_delivery": estimated_delivery,
            "updated_at": now_utc(),
        }},
        return_document=ReturnDocument.AFTER,
    )


def migrate_legacy_statuses(database) -> int:
    """Rewrite pre-redesign status names on orders and their history. Returns orders touched."""
    legacy = list(LEGACY_STATUS_MAP)
    touched = 0
    for order in database["order"].find({"$or": [
        {"status": {"$in": legacy}},
        {"status_history.status": {"$in": legacy}},
    ]}):
        history = order.get("status_history", [])
        for entry in history:
            entry["status"] = LEGACY_STATUS_MAP.get(entry["status"], entry["status"])
        update: Dict[str, Any] = {"status_history": history}
        old = order["status"]
        if old in LEGACY_STATUS_MAP:
            new = LEGACY_STATUS_MAP[old]
            update["status"] = new
            history.append(history_entry(new, f"Status migrated from {old} to {new}"))
        database["order"].update_one({"_id": order["_id"]}, {"$set": update})
        touched += 1
    if touched:
        logger.info("Migrated legacy statuses on %d orders", touched)
    return touched


def list_orders(database, user: AuthUser, status: Optional[str] = None, sort: Optional[str] = None,
                page: int = 1, limit: int = 10) -> dict:
    migrate_legacy_statuses(database)
    query: Dict[str, Any] = {}
    if not user.is_admin:
        query["user_id"] = user.id
    if status:
        query["status"] = LEGACY_STATUS_MAP.get(status, status)
    field, direction = parse_sort(sort)
    docs = list(database["order"].find(query).sort(field, direction).skip((page - 1) * limit).limit(limit))
    total = database["order"].count_documents(query)
    return {
        "count": len(docs),
        "total": total,
        "pagination": pagination(total, page, limit),
        "data": serialize_doc(docs),
    }


def order_stats(database) -> dict:
    migrate_legacy_statuses(database)
    breakdown = list(database["order"].aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "total_amount": {"$sum": "$total_amount"}}},
        {"$sort": {"_id": 1}},
    ]))
    revenue = list(database["order"].aggregate([
        {"$match": {"status": "ready-for-pickup"}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]))
    return {
        "status_breakdown": [
            {"status": b["_id"], "count": b["count"], "total_amount": b["total_amount"]} for b in breakdown
        ],
        "total_orders": database["order"].count_documents({}),
        "total_revenue": revenue[0]["total"] if revenue else 0,
    }

# --------------------- Routes ---------------------

def _status_event(order: dict) -> dict:
    return {"id": str(order["_id"]), "status": order["status"], "order_number": order["order_number"]}


@router.get("")
def read_orders(
    status: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),
    database=Depends(get_db),
):
    return list_orders(database, user, status, sort, page, limit)


@router.post("", status_code=201)
def place_order(body: CreateOrderRequest, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    order = create_order(database, user.id, body.shipping_address, body.payment_method, body.notes)
    return {"order": serialize_doc(order), "cart_cleared": True}


@router.get("/stats")
def read_order_stats(admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    return order_stats(database)


@router.get("/{order_id}")
def read_order(order_id: str, user: AuthUser = Depends(get_current_user), database=Depends(get_db)):
    return serialize_doc(get_order(database, order_id, user))


@router.put("/{order_id}")
async def change_order_status(order_id: str, body: UpdateStatusRequest,
                              admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    order = await run_in_threadpool(update_status, database, order_id, body.status, body.note)
    await notify_status_change("orderStatusChanged", order["user_id"], _status_event(order))
    return serialize_doc(order)


@router.put("/{order_id}/cancel")
async def cancel_my_order(order_id: str, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    order = await run_in_threadpool(cancel_order, database, order_id, user)
    await notify_status_change("orderStatusChanged", order["user_id"], _status_event(order))
    return serialize_doc(order)


@router.put("/{order_id}/tracking")
def change_tracking(order_id: str, body: UpdateTrackingRequest,
                    admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    order = update_tracking(database, order_id, body.tracking_number, body.carrier, body.estimated_delivery)
    return serialize_doc(order)
