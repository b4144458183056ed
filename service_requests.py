import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from pymongo import ReturnDocument

from auth import AuthUser, get_current_user, require_admin, require_customer
from database import create_document, get_db, now_utc, oid, pagination, serialize_doc
from errors import Forbidden, IllegalStatusTransition, NotFound
from lifecycle import check_transition, history_entry
from notifications import notify_status_change
from schemas import Address, ServiceRequest as ServiceRequestSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/service-requests", tags=["service-requests"])

SERVICE_TRANSITIONS = {
    "pending": frozenset({"assigned", "in-progress", "cancelled"}),
    "assigned": frozenset({"pending", "in-progress", "cancelled"}),
    "in-progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

CANCELLABLE = ("pending", "assigned")


class CreateServiceRequest(BaseModel):
    service_type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    preferred_date: datetime
    preferred_time: str
    contact_number: str
    address: Optional[Address] = None


class UpdateServiceRequest(BaseModel):
    status: Optional[str] = None
    technician: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    note: Optional[str] = None

# --------------------- Engine ---------------------

def create(database, user_id: str, body: CreateServiceRequest) -> dict:
    doc = ServiceRequestSchema(
        user_id=user_id,
        status="pending",
        status_history=[history_entry("pending", "Service request created")],
        **body.model_dump(),
    )
    request_id = create_document(database, "service_request", doc)
    logger.info("Service request %s created by user %s", request_id, user_id)
    return database["service_request"].find_one({"_id": oid(request_id)})


def find(database, request_id: str) -> dict:
    doc = database["service_request"].find_one({"_id": oid(request_id)})
    if not doc:
        raise NotFound("Service request")
    return doc


def get(database, request_id: str, user: AuthUser) -> dict:
    doc = find(database, request_id)
    if not user.is_admin and doc["user_id"] != user.id:
        raise Forbidden("Not authorized to access this service request")
    return doc


def update(database, request_id: str, status: Optional[str] = None, technician: Optional[str] = None,
           scheduled_date: Optional[datetime] = None, note: Optional[str] = None) -> dict:
    """Admin edit. Any write carrying a status appends a history entry, even when it repeats the current one."""
    doc = find(database, request_id)
    changes = {"updated_at": now_utc()}
    ops = {"$set": changes}
    if technician is not None:
        changes["technician"] = technician
    if scheduled_date is not None:
        changes["scheduled_date"] = scheduled_date
    if status is not None:
        check_transition(SERVICE_TRANSITIONS, doc["status"], status)
        changes["status"] = status
        ops["$push"] = {"status_history": history_entry(status, note)}
    updated = database["service_request"].find_one_and_update(
        {"_id": doc["_id"], "status": doc["status"]}, ops, return_document=ReturnDocument.AFTER)
    if updated is None:
        raise IllegalStatusTransition(f"Service request is no longer {doc['status']}")
    if status is not None:
        logger.info("Service request %s: %s -> %s", request_id, doc["status"], status)
    return updated


def cancel(database, request_id: str, user: AuthUser) -> dict:
    doc = find(database, request_id)
    if not user.is_admin and doc["user_id"] != user.id:
        raise Forbidden("Not authorized to cancel this service request")
    if doc["status"] not in CANCELLABLE:
        raise IllegalStatusTransition("Can only cancel pending or assigned service requests")
    updated = database["service_request"].find_one_and_update(
        {"_id": doc["_id"], "status": {"$in": list(CANCELLABLE)}},
        {
            "$set": {"status": "cancelled", "updated_at": now_utc()},
            "$push": {"status_history": history_entry("cancelled", "Service request cancelled by user")},
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise IllegalStatusTransition("Can only cancel pending or assigned service requests")
    return updated


def delete(database, request_id: str) -> None:
    res = database["service_request"].delete_one({"_id": oid(request_id)})
    if res.deleted_count == 0:
        raise NotFound("Service request")
    logger.info("Service request %s deleted", request_id)


def list_all(database, page: int = 1, limit: int = 10) -> dict:
    docs = list(database["service_request"].find({}).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    total = database["service_request"].count_documents({})
    return {
        "count": len(docs),
        "total": total,
        "pagination": pagination(total, page, limit),
        "data": serialize_doc(docs),
    }


def list_for_user(database, user_id: str) -> list:
    return list(database["service_request"].find({"user_id": user_id}).sort("created_at", -1))

# --------------------- Routes ---------------------

def _status_event(doc: dict) -> dict:
    return {"id": str(doc["_id"]), "status": doc["status"]}


@router.get("")
def read_all(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
             admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    return list_all(database, page, limit)


@router.post("", status_code=201)
def submit(body: CreateServiceRequest, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    return serialize_doc(create(database, user.id, body))


@router.get("/user")
def read_mine(user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    docs = list_for_user(database, user.id)
    return {"count": len(docs), "data": serialize_doc(docs)}


@router.get("/{request_id}")
def read_one(request_id: str, user: AuthUser = Depends(get_current_user), database=Depends(get_db)):
    return serialize_doc(get(database, request_id, user))


@router.put("/{request_id}")
async def edit(request_id: str, body: UpdateServiceRequest,
               admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    doc = await run_in_threadpool(
        update, database, request_id, body.status, body.technician, body.scheduled_date, body.note)
    if body.status is not None:
        await notify_status_change("serviceRequestStatusChanged", doc["user_id"], _status_event(doc))
    return serialize_doc(doc)


@router.put("/{request_id}/cancel")
async def cancel_mine(request_id: str, user: AuthUser = Depends(require_customer), database=Depends(get_db)):
    doc = await run_in_threadpool(cancel, database, request_id, user)
    await notify_status_change("serviceRequestStatusChanged", doc["user_id"], _status_event(doc))
    return serialize_doc(doc)


@router.delete("/{request_id}")
def remove(request_id: str, admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    delete(database, request_id)
    return {"ok": True, "message": "Service request deleted"}
