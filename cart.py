import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import config
from auth import AuthUser, require_customer
from database import create_document, get_db, now_utc, oid, serialize_doc
from errors import InsufficientStock, NotFound, ValidationFailed
from schemas import Cart as CartSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["cart"])


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(BaseModel):
    # range checked by update_item so a bad value is a 400 like other cart errors
    quantity: int

# --------------------- Engine ---------------------

def compute_totals(items: List[dict]) -> dict:
    """Derived cart pricing. Called on every save, never stored on its own."""
    subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
    tax = round(subtotal * config.TAX_RATE, 2)
    if subtotal > config.FREE_SHIPPING_THRESHOLD:
        shipping_cost = 0
    else:
        shipping_cost = config.SHIPPING_FEE
    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping_cost": shipping_cost,
        "total_amount": round(subtotal + tax + shipping_cost, 2),
    }


def get_cart(database, user_id: str) -> dict:
    cart = database["cart"].find_one({"user_id": user_id})
    if cart is None:
        create_document(database, "cart", CartSchema(user_id=user_id))
        cart = database["cart"].find_one({"user_id": user_id})
    return cart


def save_cart(database, cart: dict) -> dict:
    cart.update(compute_totals(cart["items"]))
    cart["updated_at"] = now_utc()
    database["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {k: cart[k] for k in ("items", "subtotal", "tax", "shipping_cost", "total_amount", "updated_at")}},
    )
    return cart


def _find_line(cart: dict, product_id: str):
    for line in cart["items"]:
        if line["product_id"] == product_id:
            return line
    return None


def add_item(database, user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")
    product = database["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFound("Product")

    cart = get_cart(database, user_id)
    line = _find_line(cart, product_id)
    already = line["quantity"] if line else 0
    if product.get("stock", 0) < already + quantity:
        raise InsufficientStock()

    if line:
        line["quantity"] += quantity
        line["price"] = product["price"]
    else:
        cart["items"].append({"product_id": product_id, "quantity": quantity, "price": product["price"]})
    return save_cart(database, cart)


def update_item(database, user_id: str, product_id: str, quantity: int) -> dict:
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")
    cart = database["cart"].find_one({"user_id": user_id})
    if cart is None:
        raise NotFound("Cart")
    line = _find_line(cart, product_id)
    if line is None:
        raise NotFound("Item in cart")
    product = database["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFound("Product")
    if product.get("stock", 0) < quantity:
        raise InsufficientStock()
    line["quantity"] = quantity
    return save_cart(database, cart)


def remove_item(database, user_id: str, product_id: str) -> dict:
    cart = database["cart"].find_one({"user_id": user_id})
    if cart is None:
        raise NotFound("Cart")
    cart["items"] = [line for line in cart["items"] if line["product_id"] != product_id]
    return save_cart(database, cart)


def clear(database, user_id: str) -> dict:
    cart = get_cart(database, user_id)
    cart["items"] = []
    return save_cart(database, cart)


def populate(database, cart: dict) -> dict:
    """Attach current product details to each line for display."""
    out = serialize_doc(cart)
    ids = [oid(line["product_id"]) for line in cart["items"]]
    products = {
        str(p["_id"]): p
        for p in database["product"].find({"_id": {"$in": ids}}, {"name": 1, "price": 1, "image": 1, "stock": 1})
    }
    for line in out["items"]:
        product = products.get(line["product_id"])
        line["product"] = serialize_doc(product) if product else None
    return out

# --------------------- Routes ---------------------

@router.get("")
def read_cart(user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return populate(database, get_cart(database, user.id))


@router.post("")
def add_to_cart(body: AddToCartRequest, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return populate(database, add_item(database, user.id, body.product_id, body.quantity))


@router.delete("")
def clear_cart(user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return populate(database, clear(database, user.id))


@router.put("/{product_id}")
def update_cart_item(product_id: str, body: UpdateCartItemRequest,
                     user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return populate(database, update_item(database, user.id, product_id, body.quantity))


@router.delete("/{product_id}")
def remove_from_cart(product_id: str, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return populate(database, remove_item(database, user.id, product_id))
