"""
HTTP route handlers. Each module exposes an APIRouter mounted by ``main``.

Every success response uses the same envelope:
``{"success": true, "message": ..., "data": ..., **extra}``.
"""

import re
from typing import Any, Optional

from database import to_public


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def user_level(stats: Optional[dict]) -> str:
    stats = stats or {}
    activity = stats.get("items_listed", 0) + stats.get("items_swapped", 0) + stats.get("total_swaps", 0)
    if activity >= 50:
        return "Expert"
    if activity >= 20:
        return "Advanced"
    if activity >= 10:
        return "Intermediate"
    if activity >= 5:
        return "Beginner"
    return "New"


def public_user(user: Optional[dict]) -> Optional[dict]:
    out = to_public(user)
    if out is not None:
        out["level"] = user_level(out.get("stats"))
    return out


def search_regex(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


def sort_spec(sort_by: str, sort_order: str, allowed: tuple, default: str = "created_at"):
    field = sort_by if sort_by in allowed else default
    return field, -1 if sort_order == "desc" else 1
