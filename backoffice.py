"""
Read-only reports for the admin dashboard: customers and headline stats.
"""
import re
from datetime import datetime
from typing import List, Optional

from database import to_object_id, utcnow
from orders import CANCELLED, ORDER_TRANSITIONS
from schemas import PaymentStatus


def list_customers(db, search: Optional[str] = None) -> List[dict]:
    filter_q = {}
    if search:
        pattern = re.escape(search.strip())
        filter_q["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
            {"phone": {"$regex": pattern}},
        ]
    users = list(db["user"].find(filter_q).sort("created_at", -1))
    user_ids = [str(u["_id"]) for u in users]

    orders_by_user = {uid: [] for uid in user_ids}
    cursor = db["order"].find(
        {"user_id": {"$in": user_ids}},
        {"total_amount": 1, "status": 1, "created_at": 1, "user_id": 1},
    ).sort("created_at", -1)
    for o in cursor:
        orders_by_user[o["user_id"]].append({
            "id": str(o["_id"]),
            "total_amount": o["total_amount"],
            "status": o["status"],
            "created_at": o["created_at"],
        })

    result = []
    for u in users:
        placed = orders_by_user[str(u["_id"])]
        result.append({
            "id": str(u["_id"]),
            "name": u.get("name"),
            "email": u.get("email"),
            "phone": u.get("phone"),
            "created_at": u.get("created_at"),
            "total_orders": len(placed),
            "total_spent": sum(o["total_amount"] for o in placed if o["status"] != CANCELLED),
            "orders": placed,
        })
    return result


def _revenue(db, since: Optional[datetime] = None) -> int:
    match = {
        "status": {"$ne": CANCELLED},
        "payment_status": {"$ne": PaymentStatus.failed.value},
    }
    if since is not None:
        match["created_at"] = {"$gte": since}
    rows = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "revenue": {"$sum": "$total_amount"}}},
    ]))
    return rows[0]["revenue"] if rows else 0


def top_selling(db, limit: int = 5) -> List[dict]:
    rows = list(db["order"].aggregate([
        {"$match": {"status": {"$ne": CANCELLED}}},
        {"$unwind": "$items"},
        {"$group": {"_id": "$items.product_id", "total_sold": {"$sum": "$items.quantity"}}},
        {"$sort": {"total_sold": -1}},
        {"$limit": limit},
    ]))
    ids = [to_object_id(r["_id"]) for r in rows]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}}, {"name": 1, "images": 1})}
    top = []
    for r in rows:
        p = products.get(r["_id"], {})
        top.append({
            "product_id": r["_id"],
            "name": p.get("name", "Unknown"),
            "image": (p.get("images") or [""])[0],
            "total_sold": r["total_sold"],
        })
    return top


def dashboard_stats(db) -> dict:
    now = utcnow()
    first_of_month = datetime(now.year, now.month, 1)

    counts = {row["_id"]: row["count"] for row in db["order"].aggregate([
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ])}
    stats = {
        "total_products": db["product"].count_documents({}),
        "total_orders": db["order"].count_documents({}),
        "total_revenue": _revenue(db),
        "monthly_revenue": _revenue(db, since=first_of_month),
        "total_customers": db["user"].count_documents({}),
        "top_selling": top_selling(db),
    }
    for status in ORDER_TRANSITIONS:
        stats[f"{status}_orders"] = counts.get(status, 0)
    return stats
