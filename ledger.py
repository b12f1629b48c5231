"""
Points ledger

Every balance change goes through ``add_user_points`` or ``deduct_user_points``,
which update the user and append a Transaction. The balance update is a single
``find_one_and_update``; the transaction insert is a second write with no
rollback.
"""

import logging
from typing import Optional

from pymongo import ReturnDocument

from database import create_document, parse_object_id
from errors import InsufficientPoints, UserNotFound, ValidationFailed
from schemas import Transaction, TransactionMetadata

logger = logging.getLogger(__name__)

CREDIT_TYPES = ("purchase", "bonus", "refund", "transfer")

EMPTY_STATS = {
    "total_transactions": 0,
    "total_purchased": 0,
    "total_deducted": 0,
    "total_bonus": 0,
    "completed_transactions": 0,
    "pending_transactions": 0,
}


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValidationFailed("Amount must be a non-negative integer")
    return amount


def _record(db, user_id: str, type_: str, amount: int, reason: str, before: int, after: int,
            metadata: Optional[dict] = None, txn_fields: Optional[dict] = None) -> str:
    txn = Transaction(
        user_id=user_id,
        type=type_,
        amount=amount,
        description=reason[:200],
        status="completed",
        metadata=TransactionMetadata(**(metadata or {})),
        balance_before=before,
        balance_after=after,
        **(txn_fields or {}),
    )
    return create_document(db, "transaction", txn)


def deduct_user_points(db, user_id, amount: int, reason: str, metadata: Optional[dict] = None,
                       inc: Optional[dict] = None) -> dict:
    """
    Take ``amount`` points from a user and log a deduction.

    ``inc`` carries extra counters (e.g. stats) bumped in the same update.
    Returns the updated user document.
    """
    _check_amount(amount)
    oid = parse_object_id(user_id, "user id")
    user = db.user.find_one({"_id": oid}, {"points": 1})
    if not user:
        raise UserNotFound()
    if user.get("points", 0) < amount:
        raise InsufficientPoints()

    before = db.user.find_one_and_update(
        {"_id": oid, "points": {"$gte": amount}},
        {"$inc": {"points": -amount, **(inc or {})}},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        # balance moved between the read and the guarded write
        raise InsufficientPoints()

    after_points = before["points"] - amount
    _record(db, str(oid), "deduction", amount, reason, before["points"], after_points, metadata)
    logger.info("Deducted %s points from user %s (%s -> %s): %s", amount, oid, before["points"], after_points, reason)
    before["points"] = after_points
    return before


def add_user_points(db, user_id, amount: int, reason: str, type: str = "bonus",
                    metadata: Optional[dict] = None, inc: Optional[dict] = None,
                    txn_fields: Optional[dict] = None) -> dict:
    """
    Credit ``amount`` points to a user and log a transaction of ``type``.

    ``txn_fields`` sets extra Transaction fields such as ``payment_id``.
    """
    _check_amount(amount)
    if type not in CREDIT_TYPES:
        raise ValidationFailed(f"Invalid credit type: {type}")
    oid = parse_object_id(user_id, "user id")

    before = db.user.find_one_and_update(
        {"_id": oid},
        {"$inc": {"points": amount, **(inc or {})}},
        return_document=ReturnDocument.BEFORE,
    )
    if before is None:
        raise UserNotFound()

    after_points = before.get("points", 0) + amount
    _record(db, str(oid), type, amount, reason, before.get("points", 0), after_points, metadata, txn_fields)
    logger.info("Added %s points to user %s as %s (%s -> %s): %s", amount, oid, type, before.get("points", 0), after_points, reason)
    before["points"] = after_points
    return before


def transaction_stats(db, user_id) -> dict:
    pipeline = [
        {"$match": {"user_id": str(user_id)}},
        {"$group": {
            "_id": None,
            "total_transactions": {"$sum": 1},
            "total_purchased": {"$sum": {"$cond": [{"$eq": ["$type", "purchase"]}, "$amount", 0]}},
            "total_deducted": {"$sum": {"$cond": [{"$eq": ["$type", "deduction"]}, "$amount", 0]}},
            "total_bonus": {"$sum": {"$cond": [{"$eq": ["$type", "bonus"]}, "$amount", 0]}},
            "completed_transactions": {"$sum": {"$cond": [{"$eq": ["$status", "completed"]}, 1, 0]}},
            "pending_transactions": {"$sum": {"$cond": [{"$eq": ["$status", "pending"]}, 1, 0]}},
        }},
    ]
    rows = list(db.transaction.aggregate(pipeline))
    if not rows:
        return dict(EMPTY_STATS)
    row = rows[0]
    row.pop("_id", None)
    return row


def recent_transactions(db, user_id, limit: int = 5) -> list:
    return list(db.transaction.find({"user_id": str(user_id)}).sort("created_at", -1).limit(limit))
