from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import require_role
from database import get_db, paginate
from routers import ok, search_regex
from routers.items import attach_owners

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_role(["admin"]))])

COMMISSION = 0.1


@router.get("/items")
def admin_items(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db=Depends(get_db),
):
    query: dict = {}
    if search:
        rx = search_regex(search)
        query["$or"] = [{"title": rx}, {"description": rx}]
    if category:
        query["category"] = category
    if status:
        query["status"] = status

    docs = list(db.item.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    total = db.item.count_documents(query)
    return ok(attach_owners(db, docs, {"name": 1, "email": 1}), pagination=paginate(page, limit, total))


def _first(rows) -> dict:
    rows = list(rows)
    return rows[0] if rows else {}


@router.get("/stats")
def admin_stats(db=Depends(get_db)):
    users = _first(db.user.aggregate([
        {"$group": {
            "_id": None,
            "total_users": {"$sum": 1},
            "active_users": {"$sum": {"$cond": [{"$eq": ["$is_active", True]}, 1, 0]}},
            "total_points": {"$sum": "$points"},
            "avg_rating": {"$avg": "$stats.rating"},
        }},
    ]))
    items = _first(db.item.aggregate([
        {"$group": {
            "_id": None,
            "total_items": {"$sum": 1},
            "available_items": {"$sum": {"$cond": [{"$eq": ["$status", "available"]}, 1, 0]}},
            "swapped_items": {"$sum": {"$cond": [{"$eq": ["$status", "swapped"]}, 1, 0]}},
            "total_points": {"$sum": "$points"},
        }},
    ]))
    transactions = _first(db.transaction.aggregate([
        {"$group": {
            "_id": None,
            "total_transactions": {"$sum": 1},
            "total_purchased": {"$sum": {"$cond": [{"$eq": ["$type", "purchase"]}, "$amount", 0]}},
            "total_deducted": {"$sum": {"$cond": [{"$eq": ["$type", "deduction"]}, "$amount", 0]}},
        }},
    ]))

    return ok({
        "total_users": users.get("total_users", 0),
        "active_users": users.get("active_users", 0),
        "total_points": users.get("total_points", 0),
        "avg_rating": users.get("avg_rating") or 0,
        "total_items": items.get("total_items", 0),
        "available_items": items.get("available_items", 0),
        "swapped_items": items.get("swapped_items", 0),
        "total_transactions": transactions.get("total_transactions", 0),
        "total_revenue": round(transactions.get("total_purchased", 0) * COMMISSION),
    })
