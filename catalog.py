"""
Admin-managed reference data: service types and equipment types.

Both collections share one lifecycle: public reads of active entries,
admin writes, unique names, and soft deletion through `is_active` so
historical service requests keep pointing at something real.
"""

import logging
from typing import Optional, Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import require_admin
from database import create_document, get_db, now_utc, oid, serialize_doc
from errors import NotFound, ValidationFailed
from schemas import EquipmentCategory, EquipmentType, ServiceType

logger = logging.getLogger(__name__)


class ServiceTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    base_price: Optional[float] = Field(None, ge=0)
    estimated_duration: Optional[float] = Field(None, ge=0.5)


class EquipmentTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[EquipmentCategory] = None


def list_active(database, collection: str) -> list:
    return list(database[collection].find({"is_active": True}).sort("name", 1))


def get_entry(database, collection: str, entry_id: str, label: str) -> dict:
    doc = database[collection].find_one({"_id": oid(entry_id)})
    if not doc:
        raise NotFound(label)
    return doc


def create_entry(database, collection: str, body: BaseModel, label: str) -> dict:
    if database[collection].find_one({"name": body.name}):
        raise ValidationFailed(f"{label} with this name already exists")
    entry_id = create_document(database, collection, body)
    return database[collection].find_one({"_id": oid(entry_id)})


def update_entry(database, collection: str, entry_id: str, body: BaseModel, label: str) -> dict:
    current = get_entry(database, collection, entry_id, label)
    update = body.model_dump(exclude_none=True)
    new_name = update.get("name")
    if new_name and new_name != current["name"] and database[collection].find_one({"name": new_name}):
        raise ValidationFailed(f"{label} with this name already exists")
    update["updated_at"] = now_utc()
    database[collection].update_one({"_id": current["_id"]}, {"$set": update})
    return database[collection].find_one({"_id": current["_id"]})


def soft_delete(database, collection: str, entry_id: str, label: str) -> None:
    current = get_entry(database, collection, entry_id, label)
    database[collection].update_one(
        {"_id": current["_id"]},
        {"$set": {"is_active": False, "updated_at": now_utc()}},
    )
    logger.info("%s %s deactivated", label, entry_id)


def build_router(prefix: str, collection: str, label: str,
                 create_model: Type[BaseModel], update_model: Type[BaseModel]) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[collection])

    @router.get("")
    def list_entries(database=Depends(get_db)):
        return serialize_doc(list_active(database, collection))

    @router.get("/{entry_id}")
    def read_entry(entry_id: str, database=Depends(get_db)):
        return serialize_doc(get_entry(database, collection, entry_id, label))

    @router.post("", status_code=201)
    def create(body: create_model, admin=Depends(require_admin), database=Depends(get_db)):
        return serialize_doc(create_entry(database, collection, body, label))

    @router.put("/{entry_id}")
    def update(entry_id: str, body: update_model, admin=Depends(require_admin), database=Depends(get_db)):
        return serialize_doc(update_entry(database, collection, entry_id, body, label))

    @router.delete("/{entry_id}")
    def delete(entry_id: str, admin=Depends(require_admin), database=Depends(get_db)):
        soft_delete(database, collection, entry_id, label)
        return {"ok": True, "message": f"{label} deleted successfully"}

    return router


service_types_router = build_router(
    "/service-types", "service_type", "Service type", ServiceType, ServiceTypeUpdate)
equipment_types_router = build_router(
    "/equipment-types", "equipment_type", "Equipment type", EquipmentType, EquipmentTypeUpdate)
