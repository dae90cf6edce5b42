"""
Order records: creation from checkout, owner and admin reads, admin updates,
and the aggregates behind the admin dashboard.
"""
import calendar
import csv
import io
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from database import (
    count_documents,
    create_document,
    get_collection,
    get_document,
    get_documents,
    serialize_doc,
    update_document,
    utcnow,
)
from errors import AuthorizationError, NotFoundError, ValidationFailed
from logger import get_logger
from schemas import ORDER_STATUSES, DashboardStats, Order, OrderAdminUpdate

logger = get_logger(__name__)

ORDERS = "orders"
DATE_RANGES = ("all", "today", "week", "month")
EXPORT_COLUMNS = ["Order ID", "Customer", "Email", "Phone", "Status", "Amount", "Created At"]


def create_order(order: Order) -> str:
    order_id = create_document(ORDERS, order)
    logger.info(f"Order {order_id} created for user {order.user_id} ({order.total_paid} INR)")
    return order_id


def get_order(id: str) -> dict:
    doc = get_document(ORDERS, id)
    if not doc:
        raise NotFoundError("Order", id)
    return serialize_doc(doc)


def get_order_for_user(id: str, user_id: str) -> dict:
    order = get_order(id)
    if order.get("userId") != user_id:
        raise AuthorizationError("You do not have access to this order")
    return order


def update_order(id: str, updates: Dict[str, Any]) -> None:
    if not update_document(ORDERS, id, updates):
        raise NotFoundError("Order", id)


def _matches(order: dict, term: str, fields) -> bool:
    for field in fields:
        value = order.get(field)
        if value and term in str(value).lower():
            return True
    return False


def get_user_orders(user_id: str, search: Optional[str] = None) -> List[dict]:
    items = get_documents(ORDERS, {"userId": user_id}, sort=[("createdAt", -1)])
    orders = [serialize_doc(it) for it in items]
    if search and search.strip():
        term = search.strip().lower()
        orders = [o for o in orders if _matches(o, term, ("id", "party1Name", "party2Name", "status"))]
    return orders


# -------------------------
# Admin listing
# -------------------------

def _month_ago(now: datetime) -> datetime:
    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def date_range_start(date_range: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Lower bound on createdAt for the admin date filter, None for "all"."""
    if date_range not in DATE_RANGES:
        raise ValidationFailed(f"Unknown date filter '{date_range}'")
    now = now or utcnow()
    if date_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == "week":
        return now - timedelta(days=7)
    if date_range == "month":
        return _month_ago(now)
    return None


def list_orders(
    search: Optional[str] = None,
    status: Optional[str] = None,
    date_range: str = "all",
    now: Optional[datetime] = None,
) -> List[dict]:
    query: Dict[str, Any] = {}
    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise ValidationFailed(f"Unknown order status '{status}'")
        query["status"] = status
    since = date_range_start(date_range or "all", now)
    if since is not None:
        query["createdAt"] = {"$gte": since}

    items = get_documents(ORDERS, query, sort=[("createdAt", -1)])
    orders = [serialize_doc(it) for it in items]
    if search and search.strip():
        term = search.strip().lower()
        orders = [
            o for o in orders
            if _matches(o, term, ("id", "email", "phone", "party1Name", "party2Name"))
        ]
    return orders


def update_order_admin(id: str, payload: OrderAdminUpdate) -> dict:
    """Write the admin-edited fields that differ from the stored order.

    Status may be set to any of the four values regardless of the current one.
    """
    order = get_order(id)
    updates: Dict[str, Any] = {}
    if payload.status is not None and payload.status != order.get("status"):
        updates["status"] = payload.status
    if payload.pdf_url is not None and payload.pdf_url != (order.get("pdfUrl") or ""):
        updates["pdfUrl"] = payload.pdf_url
    if payload.courier_tracking_id is not None and payload.courier_tracking_id != (order.get("courierTrackingId") or ""):
        updates["courierTrackingId"] = payload.courier_tracking_id
    if not updates:
        raise ValidationFailed("No fields to update")
    update_order(id, updates)
    logger.info(f"Order {id} updated by admin: {sorted(updates)}")
    return get_order(id)


# -------------------------
# Dashboard aggregates
# -------------------------

def get_orders_count_by_status() -> Dict[str, int]:
    counts = {s: 0 for s in ORDER_STATUSES}
    pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    for row in get_collection(ORDERS).aggregate(pipeline):
        if row["_id"] in counts:
            counts[row["_id"]] = row["count"]
    return counts


def get_total_revenue() -> int:
    pipeline = [
        {"$match": {"status": {"$ne": "failed"}}},
        {"$group": {"_id": None, "total": {"$sum": "$totalPaid"}}},
    ]
    rows = list(get_collection(ORDERS).aggregate(pipeline))
    return int(rows[0]["total"]) if rows else 0


def count_orders_since(since: datetime) -> int:
    return count_documents(ORDERS, {"createdAt": {"$gte": since}})


def get_recent_orders(limit: int = 10) -> List[dict]:
    items = get_documents(ORDERS, {}, limit=limit, sort=[("createdAt", -1)])
    return [serialize_doc(it) for it in items]


def dashboard_stats(now: Optional[datetime] = None) -> DashboardStats:
    counts = get_orders_count_by_status()
    return DashboardStats(
        total_orders=sum(counts.values()),
        pending=counts["pending"],
        processing=counts["processing"],
        completed=counts["completed"],
        failed=counts["failed"],
        total_revenue=get_total_revenue(),
        today_orders=count_orders_since(date_range_start("today", now)),
        recent_orders=get_recent_orders(10),
    )


# -------------------------
# Export
# -------------------------

def _format_created_at(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M:%S")
    return ""


def export_orders_csv(orders: List[dict]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_COLUMNS)
    for order in orders:
        writer.writerow([
            order.get("id", ""),
            order.get("party1Name", ""),
            order.get("email", ""),
            order.get("phone", ""),
            order.get("status", ""),
            order.get("totalPaid", 0),
            _format_created_at(order.get("createdAt")),
        ])
    return buf.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    return f"orders-{(now or utcnow()).strftime('%Y-%m-%d')}.csv"
