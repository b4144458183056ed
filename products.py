import logging
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from auth import require_admin
from database import create_document, get_db, now_utc, oid, pagination, parse_sort, serialize_doc
from errors import NotFound
from product_cache import product_cache
from schemas import Product as ProductSchema, ProductCategory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

SUGGESTION_LIMIT = 8


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[ProductCategory] = None
    stock: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None
    low_stock_alert: Optional[int] = Field(None, ge=0)

# --------------------- Helpers ---------------------

def find_product(database, product_id: str) -> dict:
    product = database["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFound("Product")
    return product


def query_products(database, category: Optional[str], search: Optional[str],
                   sort: Optional[str], page: int, limit: int) -> dict:
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    field, direction = parse_sort(sort)
    skip = (page - 1) * limit
    docs = list(database["product"].find(query).sort(field, direction).skip(skip).limit(limit))
    total = database["product"].count_documents(query)
    return {
        "count": len(docs),
        "total": total,
        "pagination": pagination(total, page, limit),
        "data": serialize_doc(docs),
    }

# --------------------- Routes ---------------------

@router.get("")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    database=Depends(get_db),
):
    key = (category, search, sort, page, limit)
    cached = product_cache.get(key)
    if cached is not None:
        return cached
    result = query_products(database, category, search, sort, page, limit)
    product_cache.set(key, result)
    return result


@router.get("/categories")
def list_categories(database=Depends(get_db)):
    return sorted(c for c in database["product"].distinct("category") if c)


@router.get("/suggestions")
def search_suggestions(q: str = "", database=Depends(get_db)):
    q = q.strip()
    if not q:
        return []
    cursor = database["product"].find(
        {"name": {"$regex": re.escape(q), "$options": "i"}},
        {"name": 1},
    ).limit(SUGGESTION_LIMIT)
    names = []
    for doc in cursor:
        if doc["name"] not in names:
            names.append(doc["name"])
    return names


@router.get("/low-stock")
def low_stock_products(admin=Depends(require_admin), database=Depends(get_db)):
    docs = list(database["product"].find({"$expr": {"$lte": ["$stock", "$low_stock_alert"]}}))
    return {"count": len(docs), "data": serialize_doc(docs)}


@router.get("/{product_id}")
def get_product(product_id: str, database=Depends(get_db)):
    return serialize_doc(find_product(database, product_id))


@router.post("", status_code=201)
def create_product(body: ProductSchema, admin=Depends(require_admin), database=Depends(get_db)):
    product_id = create_document(database, "product", body)
    logger.info("Product %s created by %s", product_id, admin.id)
    return serialize_doc(database["product"].find_one({"_id": oid(product_id)}))


@router.put("/{product_id}")
def update_product(product_id: str, body: ProductUpdate, admin=Depends(require_admin), database=Depends(get_db)):
    update = body.model_dump(exclude_none=True)
    update["updated_at"] = now_utc()
    res = database["product"].update_one({"_id": oid(product_id)}, {"$set": update})
    if res.matched_count == 0:
        raise NotFound("Product")
    return serialize_doc(database["product"].find_one({"_id": oid(product_id)}))


@router.delete("/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin), database=Depends(get_db)):
    res = database["product"].delete_one({"_id": oid(product_id)})
    if res.deleted_count == 0:
        raise NotFound("Product")
    logger.info("Product %s deleted by %s", product_id, admin.id)
    return {"ok": True}
