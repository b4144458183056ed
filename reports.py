"""
Admin reports built from MongoDB aggregation pipelines.

Everything here is read only and recomputed on every call.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends, Query

from auth import require_admin
from database import get_db, now_utc
from errors import ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"], dependencies=[Depends(require_admin)])

DEFAULT_WINDOW_DAYS = 30
TOP_N = 10

DATE_FORMATS = {
    "hour": "%Y-%m-%d %H:00",
    "day": "%Y-%m-%d",
    "week": "%Y-%U",
    "month": "%Y-%m",
    "year": "%Y",
}

# --------------------- Helpers ---------------------

def resolve_window(start: Optional[date] = None, end: Optional[date] = None) -> Tuple[datetime, datetime]:
    """Default to the last 30 days. The end date always covers its whole day."""
    today = now_utc().date()
    end = end or today
    start = start or (end - timedelta(days=DEFAULT_WINDOW_DAYS))
    if start > end:
        raise ValidationFailed("startDate must not be after endDate")
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end, time.max, tzinfo=timezone.utc),
    )


def date_format(group_by: Optional[str]) -> str:
    return DATE_FORMATS.get(group_by or "day", DATE_FORMATS["day"])


def completion_rate(completed: int, total: int) -> float:
    if not total:
        return 0
    return round(completed / total * 100, 2)


def merge_daily_trends(sales: List[dict], services: List[dict]) -> List[dict]:
    """Join per-day sales and service rows on day, filling whichever side is missing with zeros."""
    merged: Dict[str, dict] = {}
    for row in sales:
        merged[row["_id"]] = {
            "date": row["_id"],
            "sales": row.get("sales", 0),
            "orders": row.get("orders", 0),
            "service_requests": 0,
        }
    for row in services:
        entry = merged.setdefault(row["_id"], {"date": row["_id"], "sales": 0, "orders": 0, "service_requests": 0})
        entry["service_requests"] = row.get("service_requests", 0)
    return [merged[day] for day in sorted(merged)]


def _in_window(start: datetime, end: datetime, **extra) -> dict:
    return {"$match": {"created_at": {"$gte": start, "$lte": end}, **extra}}


def _bucket(fmt: str) -> dict:
    return {"$dateToString": {"format": fmt, "date": "$created_at"}}


def _count_if(status: str) -> dict:
    return {"$sum": {"$cond": [{"$eq": ["$status", status]}, 1, 0]}}


NOT_CANCELLED = {"status": {"$ne": "cancelled"}}


def _rename(rows: List[dict], key: str) -> List[dict]:
    return [{key: r.pop("_id"), **r} for r in rows]

# --------------------- Reports ---------------------

def sales_report(database, start: datetime, end: datetime, group_by: Optional[str] = "day") -> dict:
    logger.debug("Sales report %s..%s by %s", start, end, group_by)
    orders = database["order"]
    sales_data = list(orders.aggregate([
        _in_window(start, end, **NOT_CANCELLED),
        {"$group": {
            "_id": _bucket(date_format(group_by)),
            "total_sales": {"$sum": "$total_amount"},
            "order_count": {"$sum": 1},
            "average_order_value": {"$avg": "$total_amount"},
        }},
        {"$sort": {"_id": 1}},
    ]))

    top_products = list(orders.aggregate([
        _in_window(start, end, **NOT_CANCELLED),
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "name": {"$first": "$items.name"},
            "total_quantity": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": "$items.subtotal"},
        }},
        {"$sort": {"total_quantity": -1}},
        {"$limit": TOP_N},
    ]))

    sales_by_status = list(orders.aggregate([
        _in_window(start, end),
        {"$group": {"_id": "$status", "count": {"$sum": 1}, "total_amount": {"$sum": "$total_amount"}}},
        {"$sort": {"_id": 1}},
    ]))

    customers = list(orders.aggregate([
        _in_window(start, end, **NOT_CANCELLED),
        {"$group": {"_id": "$user_id", "total_spent": {"$sum": "$total_amount"}, "order_count": {"$sum": 1}}},
        {"$sort": {"total_spent": -1}},
        {"$limit": TOP_N},
    ]))
    user_ids = [ObjectId(c["_id"]) for c in customers if ObjectId.is_valid(c["_id"])]
    users = {
        str(u["_id"]): u
        for u in database["user"].find({"_id": {"$in": user_ids}}, {"name": 1, "email": 1})
    }
    for c in customers:
        u = users.get(c["_id"], {})
        c["name"] = u.get("name")
        c["email"] = u.get("email")

    total_sales = round(sum(b["total_sales"] for b in sales_data), 2)
    total_orders = sum(b["order_count"] for b in sales_data)
    return {
        "period": {"start_date": start, "end_date": end},
        "summary": {
            "total_sales": total_sales,
            "total_orders": total_orders,
            "average_order_value": round(total_sales / total_orders, 2) if total_orders else 0,
        },
        "sales_data": _rename(sales_data, "period"),
        "top_products": _rename(top_products, "product_id"),
        "sales_by_status": _rename(sales_by_status, "status"),
        "customer_analytics": _rename(customers, "user_id"),
    }


def service_report(database, start: datetime, end: datetime, group_by: Optional[str] = "day") -> dict:
    logger.debug("Service report %s..%s by %s", start, end, group_by)
    requests = database["service_request"]
    service_data = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": _bucket(date_format(group_by)), "request_count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    by_status = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    by_type = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": "$service_type", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]))
    totals = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {
            "_id": None,
            "total": {"$sum": 1},
            "completed": _count_if("completed"),
            "pending": _count_if("pending"),
            "assigned": _count_if("assigned"),
            "in_progress": _count_if("in-progress"),
            "cancelled": _count_if("cancelled"),
        }},
    ]))
    monthly = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": _bucket(DATE_FORMATS["month"]), "requests": {"$sum": 1}, "completed": _count_if("completed")}},
        {"$sort": {"_id": 1}},
    ]))

    stats = totals[0] if totals else {"total": 0, "completed": 0, "pending": 0, "assigned": 0, "in_progress": 0, "cancelled": 0}
    return {
        "period": {"start_date": start, "end_date": end},
        "summary": {
            "total_requests": stats["total"],
            "completed_requests": stats["completed"],
            "pending_requests": stats["pending"],
            "assigned_requests": stats["assigned"],
            "in_progress_requests": stats["in_progress"],
            "cancelled_requests": stats["cancelled"],
            "completion_rate": completion_rate(stats["completed"], stats["total"]),
        },
        "service_data": _rename(service_data, "period"),
        "requests_by_status": _rename(by_status, "status"),
        "requests_by_service_type": _rename(by_type, "service_type"),
        "monthly_trends": _rename(monthly, "month"),
    }


def dashboard_report(database, start: datetime, end: datetime) -> dict:
    logger.debug("Dashboard report %s..%s", start, end)
    orders = database["order"]
    requests = database["service_request"]
    day = DATE_FORMATS["day"]

    sales_summary = list(orders.aggregate([
        _in_window(start, end, **NOT_CANCELLED),
        {"$group": {"_id": None, "total_sales": {"$sum": "$total_amount"}, "total_orders": {"$sum": 1},
                    "average_order_value": {"$avg": "$total_amount"}}},
    ]))
    service_summary = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": None, "total_requests": {"$sum": 1}, "completed": _count_if("completed")}},
    ]))
    daily_sales = list(orders.aggregate([
        _in_window(start, end, **NOT_CANCELLED),
        {"$group": {"_id": _bucket(day), "sales": {"$sum": "$total_amount"}, "orders": {"$sum": 1},
                    "average_order": {"$avg": "$total_amount"}}},
        {"$sort": {"_id": 1}},
    ]))
    daily_services = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": _bucket(day), "service_requests": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))
    by_type = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": "$service_type", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]))
    by_status = list(requests.aggregate([
        _in_window(start, end),
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))

    sales = sales_summary[0] if sales_summary else {"total_sales": 0, "total_orders": 0, "average_order_value": 0}
    services = service_summary[0] if service_summary else {"total_requests": 0, "completed": 0}
    trends = merge_daily_trends(daily_sales, daily_services)
    return {
        "period": {"start_date": start, "end_date": end},
        "summary": {
            "sales": {
                "total_revenue": sales["total_sales"],
                "total_orders": sales["total_orders"],
                "average_order_value": round(sales["average_order_value"] or 0, 2),
            },
            "services": {
                "total_requests": services["total_requests"],
                "completed_requests": services["completed"],
                "completion_rate": completion_rate(services["completed"], services["total_requests"]),
            },
        },
        "sales_data": _rename(daily_sales, "date"),
        "requests_by_service_type": _rename(by_type, "service_type"),
        "requests_by_status": _rename(by_status, "status"),
        "trends": trends,
    }

# --------------------- Routes ---------------------

@router.get("/sales")
def read_sales_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    group_by: str = Query("day", alias="groupBy"),
    database=Depends(get_db),
):
    start, end = resolve_window(start_date, end_date)
    return sales_report(database, start, end, group_by)


@router.get("/services")
def read_service_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    group_by: str = Query("day", alias="groupBy"),
    database=Depends(get_db),
):
    start, end = resolve_window(start_date, end_date)
    return service_report(database, start, end, group_by)


@router.get("/dashboard")
def read_dashboard_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    database=Depends(get_db),
):
    start, end = resolve_window(start_date, end_date)
    return dashboard_report(database, start, end)
