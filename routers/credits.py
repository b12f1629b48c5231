import logging
import time
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from auth import require_auth
from database import create_document, get_db, paginate, parse_object_id, to_public, utcnow
from ledger import add_user_points, transaction_stats
from routers import ok
from schemas import BillingDetails, Payment as PaymentSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/credits", tags=["credits"])

CREDIT_PACKAGES = {
    "starter": {"points": 50, "price": 4.99},
    "basic": {"points": 100, "price": 8.99},
    "popular": {"points": 250, "price": 19.99},
    "premium": {"points": 500, "price": 34.99},
    "ultimate": {"points": 1000, "price": 59.99},
}


class PurchaseBody(BaseModel):
    package_id: str
    payment_method: Literal["credit_card", "debit_card", "paypal", "stripe"]
    billing_details: BillingDetails


def charge(payment_id: str, amount: float) -> dict:
    """Stand-in for a payment gateway call; always succeeds."""
    gateway_id = f"mock_{int(time.time() * 1000)}"
    logger.debug("Simulated charge of %.2f for payment %s", amount, payment_id)
    return {"success": True, "transaction_id": gateway_id, "processed_at": utcnow()}


@router.get("/purchase")
def list_packages(user: dict = Depends(require_auth)):
    return ok({"packages": CREDIT_PACKAGES}, "Credit packages retrieved successfully")


@router.post("/purchase")
def purchase(body: PurchaseBody, request: Request, user: dict = Depends(require_auth), db=Depends(get_db)):
    package = CREDIT_PACKAGES.get(body.package_id)
    if package is None:
        raise HTTPException(status_code=400, detail="Invalid credit package")

    payment = PaymentSchema(
        user_id=str(user["_id"]),
        amount=package["price"],
        points_to_receive=package["points"],
        payment_method=body.payment_method,
        gateway="paypal" if body.payment_method == "paypal" else "stripe",
        billing_details=body.billing_details,
        metadata={
            "ip_address": request.headers.get("x-forwarded-for") or request.headers.get("x-real-ip"),
            "user_agent": request.headers.get("user-agent"),
            "referrer": request.headers.get("referer"),
        },
    )
    payment_id = create_document(db, "payment", payment)
    payment_oid = parse_object_id(payment_id)

    response = charge(payment_id, package["price"])
    status = "completed" if response["success"] else "failed"
    db.payment.update_one(
        {"_id": payment_oid},
        {"$set": {
            "status": status,
            "gateway_payment_id": response["transaction_id"],
            "gateway_response": response,
            "updated_at": utcnow(),
        }},
    )
    logger.info("Payment %s for user %s: %s (%s points)", payment_id, user["_id"], status, package["points"])
    if status != "completed":
        raise HTTPException(status_code=402, detail="Payment was declined")

    updated = add_user_points(
        db, user["_id"], package["points"], f"Credit purchase - {body.package_id} package",
        type="purchase", metadata={"reason": body.package_id},
        txn_fields={"payment_id": response["transaction_id"], "payment_method": body.payment_method},
    )
    return ok({
        "payment": {
            "id": payment_id,
            "amount": package["price"],
            "points_received": package["points"],
            "status": status,
            "transaction_id": response["transaction_id"],
        },
        "user": {"points": updated["points"]},
    }, "Payment processed successfully")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get("/transactions")
def list_transactions(
    type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: dict = Depends(require_auth),
    db=Depends(get_db),
):
    query: dict = {"user_id": str(user["_id"])}
    if type:
        query["type"] = type
    if status:
        query["status"] = status
    if start_date or end_date:
        query["created_at"] = {}
        if start_date:
            query["created_at"]["$gte"] = _as_utc(start_date)
        if end_date:
            query["created_at"]["$lte"] = _as_utc(end_date)

    docs = db.transaction.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    total = db.transaction.count_documents(query)
    return ok(
        [to_public(t) for t in docs],
        pagination=paginate(page, limit, total),
        stats=transaction_stats(db, user["_id"]),
    )
