"""
Swap requests

A request moves through::

    pending -> approved -> completed
    pending -> rejected
    pending -> cancelled

``TRANSITIONS`` is the only place that decides which action is legal from
which status and who may take it. Status writes are conditional on the status
that was validated, so two racing actions cannot both win.

Approval claims the requested item (``pending_swap``) and any offered item
(``available``) before moving points. Points move through the ledger, so each
side gets a transaction record and a payer short of points fails the approval
instead of going negative.
"""

import logging
from typing import Optional

from database import create_document, parse_object_id, to_public, utcnow
from errors import Forbidden, InsufficientPoints, InvalidState, ItemUnavailable, NotFound, UserNotFound, ValidationFailed
from ledger import add_user_points, deduct_user_points
from schemas import SwapRequest

logger = logging.getLogger(__name__)

# action -> (allowed actor sides, source status, target status)
TRANSITIONS = {
    "approve": ({"owner"}, "pending", "approved"),
    "reject": ({"owner"}, "pending", "rejected"),
    "cancel": ({"requester"}, "pending", "cancelled"),
    "complete": ({"requester", "owner"}, "approved", "completed"),
}

ACTOR_ERRORS = {
    "approve": "Only item owner can approve swap requests",
    "reject": "Only item owner can reject swap requests",
    "cancel": "Only requester can cancel swap requests",
    "complete": "Only swap participants can complete requests",
}

PAST_TENSE = {"approve": "approved", "reject": "rejected", "cancel": "cancelled", "complete": "completed"}

DELETABLE = ("pending", "cancelled")


def next_status(status: str, action: str, sides: set) -> str:
    """Validate (status, action, actor) and return the status the request moves to."""
    if action not in TRANSITIONS:
        raise ValidationFailed("Invalid action")
    allowed, source, target = TRANSITIONS[action]
    if not sides & allowed:
        raise Forbidden(ACTOR_ERRORS[action])
    if status != source:
        raise InvalidState(f"Can only {action} {source} requests")
    return target


def actor_sides(swap: dict, item: dict, user_id: str) -> set:
    sides = set()
    if swap["requester_id"] == user_id:
        sides.add("requester")
    if item["user_id"] == user_id:
        sides.add("owner")
    return sides


def running_average(rating: float, reviews: int, new_rating: float) -> float:
    return (rating * reviews + new_rating) / (reviews + 1)


# ----------------- Creation -----------------

def _check_swap_fields(swap_type: str, offered_item_id: Optional[str], points_offered: int, points_requested: int) -> None:
    if swap_type == "item_for_item" and not offered_item_id:
        raise ValidationFailed("Offered item is required for item-for-item swaps")
    if swap_type == "item_for_points" and points_offered <= 0:
        raise ValidationFailed("Points offered must be greater than 0 for item-for-points swaps")
    if swap_type == "points_for_item" and points_requested <= 0:
        raise ValidationFailed("Points requested must be greater than 0 for points-for-item swaps")
    if swap_type == "mixed":
        if not offered_item_id:
            raise ValidationFailed("Offered item is required for mixed swaps")
        if points_offered <= 0 and points_requested <= 0:
            raise ValidationFailed("Mixed swaps must offer or request points")


def create_swap_request(db, requester_id, item_id, swap_type: str, offered_item_id: Optional[str] = None,
                        points_offered: int = 0, points_requested: int = 0, message: Optional[str] = None,
                        requester_message: Optional[str] = None, meeting_location: Optional[str] = None,
                        meeting_date=None) -> dict:
    points_offered = points_offered or 0
    points_requested = points_requested or 0
    _check_swap_fields(swap_type, offered_item_id, points_offered, points_requested)

    requester_oid = parse_object_id(requester_id, "requester id")
    item_oid = parse_object_id(item_id, "item id")
    requester = db.user.find_one({"_id": requester_oid})
    if not requester:
        raise UserNotFound("Requester not found")
    item = db.item.find_one({"_id": item_oid})
    if not item:
        raise NotFound("Item not found")
    if item.get("status") != "available":
        raise ItemUnavailable("Item is not available for swapping")
    if item["user_id"] == str(requester_oid):
        raise ValidationFailed("Cannot swap your own item")
    if swap_type in ("item_for_points", "mixed") and requester.get("points", 0) < points_offered:
        raise InsufficientPoints()

    offered_oid = None
    if offered_item_id:
        offered_oid = parse_object_id(offered_item_id, "offered item id")
        offered = db.item.find_one({"_id": offered_oid})
        if not offered:
            raise NotFound("Offered item not found")
        if offered["user_id"] != str(requester_oid):
            raise ValidationFailed("Offered item does not belong to requester")
        if offered.get("status") != "available":
            raise ItemUnavailable("Offered item is not available")

    existing = db.swaprequest.find_one({"requester_id": str(requester_oid), "item_id": str(item_oid), "status": "pending"})
    if existing:
        raise InvalidState("You already have a pending swap request for this item")

    swap = SwapRequest(
        requester_id=str(requester_oid),
        item_id=str(item_oid),
        offered_item_id=str(offered_oid) if offered_oid else None,
        message=message,
        requester_message=requester_message,
        points_offered=points_offered,
        points_requested=points_requested,
        swap_type=swap_type,
        meeting_location=meeting_location,
        meeting_date=meeting_date,
    )
    swap_id = create_document(db, "swaprequest", swap)
    db.item.update_one({"_id": item_oid}, {"$set": {"status": "pending_swap", "updated_at": utcnow()}})
    logger.info("Swap request %s created by %s for item %s (%s)", swap_id, requester_oid, item_oid, swap_type)
    return get_swap_request(db, swap_id)


# ----------------- Transitions -----------------

def _load(db, swap_id):
    swap_oid = parse_object_id(swap_id, "swap request id")
    swap = db.swaprequest.find_one({"_id": swap_oid})
    if not swap:
        raise NotFound("Swap request not found")
    item = db.item.find_one({"_id": parse_object_id(swap["item_id"], "item id")})
    if not item:
        raise NotFound("Item not found")
    return swap_oid, swap, item


def _claim(db, swap_oid, source: str, target: str, fields: dict) -> None:
    result = db.swaprequest.update_one(
        {"_id": swap_oid, "status": source},
        {"$set": {"status": target, "updated_at": utcnow(), **fields}},
    )
    if result.modified_count == 0:
        raise InvalidState(f"Swap request is no longer {source}")


def _set_item_status(db, item_id: Optional[str], status: str) -> None:
    if item_id:
        db.item.update_one({"_id": parse_object_id(item_id, "item id")}, {"$set": {"status": status, "updated_at": utcnow()}})


def _move_points(db, payer_id: str, payee_id: str, amount: int, swap_id: str) -> None:
    meta = {"swap_request_id": swap_id}
    deduct_user_points(db, payer_id, amount, f"Swap {swap_id}: points paid",
                       metadata={**meta, "related_user_id": payee_id})
    try:
        add_user_points(db, payee_id, amount, f"Swap {swap_id}: points received", type="transfer",
                        metadata={**meta, "related_user_id": payer_id})
    except UserNotFound:
        logger.warning("Payee %s missing for swap %s, refunding %s to %s", payee_id, swap_id, amount, payer_id)
        add_user_points(db, payer_id, amount, f"Swap {swap_id}: refund", type="refund", metadata=meta)
        raise


def _claim_item(db, item_id: str, source: str) -> bool:
    result = db.item.update_one(
        {"_id": parse_object_id(item_id, "item id"), "status": source},
        {"$set": {"status": "swapped", "updated_at": utcnow()}},
    )
    return result.modified_count == 1


def _release_items(db, claimed: list) -> None:
    for item_id, source in claimed:
        db.item.update_one(
            {"_id": parse_object_id(item_id, "item id"), "status": "swapped"},
            {"$set": {"status": source, "updated_at": utcnow()}},
        )


def _approve(db, swap_oid, swap: dict, item: dict, message: Optional[str]) -> None:
    _claim(db, swap_oid, "pending", "approved", {"owner_message": message})
    swap_id = str(swap_oid)
    owner_id = item["user_id"]
    requester_id = swap["requester_id"]

    def rollback():
        db.swaprequest.update_one({"_id": swap_oid, "status": "approved"},
                                  {"$set": {"status": "pending", "owner_message": swap.get("owner_message")}})
        logger.warning("Approval of swap %s rolled back", swap_id)

    # both items are claimed from the status they must hold before any points move
    wanted = [(swap["item_id"], "pending_swap")]
    if swap.get("offered_item_id"):
        wanted.append((swap["offered_item_id"], "available"))
    claimed = []
    for item_id, source in wanted:
        if not _claim_item(db, item_id, source):
            _release_items(db, claimed)
            rollback()
            raise ItemUnavailable("Offered item is not available" if claimed else "Item is not available for swapping")
        claimed.append((item_id, source))

    moved = []
    try:
        if swap.get("points_offered", 0) > 0:
            _move_points(db, requester_id, owner_id, swap["points_offered"], swap_id)
            moved.append((requester_id, owner_id, swap["points_offered"]))
        if swap.get("points_requested", 0) > 0:
            _move_points(db, owner_id, requester_id, swap["points_requested"], swap_id)
            moved.append((owner_id, requester_id, swap["points_requested"]))
    except (InsufficientPoints, UserNotFound):
        for payer, payee, amount in moved:
            add_user_points(db, payer, amount, f"Swap {swap_id}: refund", type="refund",
                            metadata={"swap_request_id": swap_id})
            deduct_user_points(db, payee, amount, f"Swap {swap_id}: reversal",
                               metadata={"swap_request_id": swap_id})
        _release_items(db, claimed)
        rollback()
        raise

    for uid in (requester_id, owner_id):
        db.user.update_one({"_id": parse_object_id(uid, "user id")}, {"$inc": {"stats.total_swaps": 1}})


def _complete(db, swap_oid, swap: dict, item: dict, sides: set, message, rating, review) -> None:
    side = "requester" if "requester" in sides else "owner"
    fields = {f"{side}_message": message}
    if rating:
        fields[f"rating.{side}"] = rating
    if review:
        fields[f"review.{side}"] = review
    _claim(db, swap_oid, "approved", "completed", fields)

    if rating:
        rated_id = item["user_id"] if side == "requester" else swap["requester_id"]
        rated = db.user.find_one({"_id": parse_object_id(rated_id, "user id")}, {"stats": 1})
        if rated:
            stats = rated.get("stats") or {}
            new_rating = running_average(stats.get("rating", 0), stats.get("reviews", 0), rating)
            db.user.update_one(
                {"_id": rated["_id"]},
                {"$set": {"stats.rating": new_rating}, "$inc": {"stats.reviews": 1}},
            )


def update_swap_request(db, swap_id, action: str, user_id, message: Optional[str] = None,
                        rating: Optional[int] = None, review: Optional[str] = None) -> dict:
    """Apply ``action`` on behalf of ``user_id`` and return the refreshed request."""
    swap_oid, swap, item = _load(db, swap_id)
    sides = actor_sides(swap, item, str(user_id))
    next_status(swap["status"], action, sides)

    if action == "approve":
        _approve(db, swap_oid, swap, item, message)
    elif action == "reject":
        _claim(db, swap_oid, "pending", "rejected", {"owner_message": message})
        _set_item_status(db, swap["item_id"], "available")
    elif action == "cancel":
        _claim(db, swap_oid, "pending", "cancelled", {"requester_message": message})
        _set_item_status(db, swap["item_id"], "available")
    else:
        _complete(db, swap_oid, swap, item, sides, message, rating, review)

    logger.info("Swap request %s %s by %s", swap_oid, PAST_TENSE[action], user_id)
    return get_swap_request(db, swap_oid)


def delete_swap_request(db, swap_id, user_id) -> None:
    swap_oid, swap, item = _load(db, swap_id)
    if not actor_sides(swap, item, str(user_id)):
        raise Forbidden("Not authorized to delete this swap request")
    if swap["status"] not in DELETABLE:
        raise InvalidState("Can only delete pending or cancelled requests")
    if swap["status"] == "pending":
        _set_item_status(db, swap["item_id"], "available")
    db.swaprequest.delete_one({"_id": swap_oid})
    logger.info("Swap request %s deleted by %s", swap_oid, user_id)


# ----------------- Reads -----------------

def _user_summary(db, user_id: Optional[str]) -> Optional[dict]:
    if not user_id:
        return None
    user = db.user.find_one({"_id": parse_object_id(user_id, "user id")}, {"name": 1, "avatar": 1, "stats.rating": 1})
    return to_public(user)


def _item_summary(db, item_id: Optional[str]) -> Optional[dict]:
    if not item_id:
        return None
    item = db.item.find_one({"_id": parse_object_id(item_id, "item id")},
                            {"title": 1, "images": 1, "points": 1, "category": 1, "user_id": 1})
    return to_public(item)


def with_summaries(db, swap: dict) -> dict:
    out = to_public(swap)
    out["requester"] = _user_summary(db, swap.get("requester_id"))
    out["item"] = _item_summary(db, swap.get("item_id"))
    out["offered_item"] = _item_summary(db, swap.get("offered_item_id"))
    out["total_points"] = (swap.get("points_offered") or 0) + (swap.get("points_requested") or 0)
    return out


def get_swap_request(db, swap_id) -> dict:
    swap = db.swaprequest.find_one({"_id": parse_object_id(swap_id, "swap request id")})
    if not swap:
        raise NotFound("Swap request not found")
    return with_summaries(db, swap)


def swap_stats(db, user_id: str) -> dict:
    """Count of requests per status where the user is requester or item owner."""
    owned = [str(i["_id"]) for i in db.item.find({"user_id": user_id}, {"_id": 1})]
    pipeline = [
        {"$match": {"$or": [{"requester_id": user_id}, {"item_id": {"$in": owned}}]}},
        {"$group": {"_id": "$status", "count": {"$sum": 1}}},
    ]
    return {row["_id"]: row["count"] for row in db.swaprequest.aggregate(pipeline)}
