"""
Buy an item outright with points.

The buyer pays the full price; the seller receives ``floor(price * 0.9)``.
The remaining 10% is kept by the platform and is not written to the ledger.

The writes are sequential, not transactional. The item is claimed first with
a conditional status update so two buyers cannot both take it; later failures
release the claim and refund what was already moved.
"""

import logging

import config
from database import parse_object_id, utcnow
from errors import ItemUnavailable, InsufficientPoints, NotFound, UserNotFound, ValidationFailed
from ledger import add_user_points, deduct_user_points

logger = logging.getLogger(__name__)

SWAP_STATS = {"stats.items_swapped": 1, "stats.total_swaps": 1}


def seller_earnings(price: int) -> int:
    return price * config.SELLER_SHARE_PERCENT // 100


def redeem_item(db, buyer_id, item_id) -> dict:
    buyer_oid = parse_object_id(buyer_id, "user id")
    item_oid = parse_object_id(item_id, "item ID format")

    buyer = db.user.find_one({"_id": buyer_oid})
    if not buyer:
        raise UserNotFound()
    item = db.item.find_one({"_id": item_oid})
    if not item:
        raise NotFound("Item not found")
    if item.get("status") != "available":
        raise ItemUnavailable("Item is not available for purchase")
    if item["user_id"] == str(buyer_oid):
        raise ValidationFailed("You cannot buy your own item")
    price = int(item["points"])
    if buyer.get("points", 0) < price:
        raise InsufficientPoints("Insufficient points to purchase this item")
    seller_oid = parse_object_id(item["user_id"], "seller id")
    if not db.user.find_one({"_id": seller_oid}, {"_id": 1}):
        raise UserNotFound("Seller not found")

    swapped_at = utcnow()
    claimed = db.item.update_one(
        {"_id": item_oid, "status": "available"},
        {"$set": {"status": "swapped", "buyer_id": str(buyer_oid), "swapped_at": swapped_at, "updated_at": swapped_at}},
    )
    if claimed.modified_count == 0:
        raise ItemUnavailable("Item is not available for purchase")

    earnings = seller_earnings(price)
    try:
        buyer_after = deduct_user_points(
            db, buyer_oid, price, f"Purchased: {item['title']}",
            metadata={"item_id": str(item_oid), "related_user_id": str(seller_oid)},
            inc=SWAP_STATS,
        )
    except (InsufficientPoints, UserNotFound):
        _release_item(db, item_oid)
        raise

    try:
        seller_after = add_user_points(
            db, seller_oid, earnings, f"Sold: {item['title']}", type="bonus",
            metadata={"item_id": str(item_oid), "related_user_id": str(buyer_oid)},
            inc=SWAP_STATS,
        )
    except UserNotFound:
        logger.warning("Seller %s vanished during redemption of item %s, refunding buyer", seller_oid, item_oid)
        add_user_points(
            db, buyer_oid, price, f"Refund: {item['title']}", type="refund",
            metadata={"item_id": str(item_oid)},
            inc={"stats.items_swapped": -1, "stats.total_swaps": -1},
        )
        _release_item(db, item_oid)
        raise UserNotFound("Seller not found")

    logger.info("User %s redeemed item %s for %s points (seller %s earned %s)",
                buyer_oid, item_oid, price, seller_oid, earnings)
    return {
        "item": {
            "id": str(item_oid),
            "title": item["title"],
            "points": price,
            "status": "swapped",
            "buyer_id": str(buyer_oid),
            "swapped_at": swapped_at,
        },
        "buyer": {
            "points": buyer_after["points"],
            "balance_before": buyer_after["points"] + price,
            "balance_after": buyer_after["points"],
        },
        "seller": {
            "points": seller_after["points"],
            "balance_before": seller_after["points"] - earnings,
            "balance_after": seller_after["points"],
        },
    }


def _release_item(db, item_oid) -> None:
    logger.warning("Releasing claim on item %s", item_oid)
    db.item.update_one(
        {"_id": item_oid, "status": "swapped"},
        {"$set": {"status": "available", "buyer_id": None, "swapped_at": None, "updated_at": utcnow()}},
    )
