from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from auth import require_auth
from database import get_db, paginate
from errors import Forbidden
from routers import ok, sort_spec
from schemas import SwapType
from swaps import PAST_TENSE, create_swap_request, delete_swap_request, get_swap_request, update_swap_request, with_summaries

router = APIRouter(prefix="/api/swap-requests", tags=["swap-requests"])

SWAP_SORTS = ("created_at", "updated_at", "status", "points_offered", "points_requested")


def acting_user_id(user: dict, claimed: Optional[str]) -> str:
    """The session user acts; a ``user_id`` in the request must name the same user."""
    uid = str(user["_id"])
    if claimed and claimed != uid:
        raise Forbidden("User ID does not match the authenticated user")
    return uid


@router.get("")
def list_swap_requests(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    requester_id: Optional[str] = None,
    item_id: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db=Depends(get_db),
):
    query: dict = {}
    if status:
        query["status"] = status
    item_ids = None
    if user_id:
        item_ids = [str(i["_id"]) for i in db.item.find({"user_id": user_id}, {"_id": 1})]
    if item_id:
        item_ids = [item_id] if item_ids is None or item_id in item_ids else []
    if item_ids is not None:
        query["item_id"] = {"$in": item_ids}
    if requester_id:
        query["requester_id"] = requester_id

    field, direction = sort_spec(sort_by, sort_order, SWAP_SORTS)
    docs = db.swaprequest.find(query).sort(field, direction).skip((page - 1) * limit).limit(limit)
    total = db.swaprequest.count_documents(query)
    return ok([with_summaries(db, d) for d in docs], pagination=paginate(page, limit, total))


class CreateSwapBody(BaseModel):
    requester_id: Optional[str] = None
    item_id: str
    offered_item_id: Optional[str] = None
    message: Optional[str] = Field(None, max_length=500)
    requester_message: Optional[str] = Field(None, max_length=500)
    points_offered: int = Field(0, ge=0)
    points_requested: int = Field(0, ge=0)
    swap_type: SwapType
    meeting_location: Optional[str] = Field(None, max_length=200)
    meeting_date: Optional[datetime] = None


@router.post("", status_code=201)
def create(body: CreateSwapBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    requester_id = acting_user_id(user, body.requester_id)
    swap = create_swap_request(
        db,
        requester_id,
        body.item_id,
        body.swap_type,
        offered_item_id=body.offered_item_id,
        points_offered=body.points_offered,
        points_requested=body.points_requested,
        message=body.message,
        requester_message=body.requester_message,
        meeting_location=body.meeting_location,
        meeting_date=body.meeting_date,
    )
    return ok(swap, "Swap request created successfully")


@router.get("/{swap_id}")
def get_one(swap_id: str, db=Depends(get_db)):
    return ok(get_swap_request(db, swap_id))


class UpdateSwapBody(BaseModel):
    action: str
    user_id: Optional[str] = None
    message: Optional[str] = Field(None, max_length=500)
    rating: Optional[int] = Field(None, ge=1, le=5)
    review: Optional[str] = Field(None, max_length=500)


@router.put("/{swap_id}")
def update(swap_id: str, body: UpdateSwapBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    actor = acting_user_id(user, body.user_id)
    swap = update_swap_request(db, swap_id, body.action, actor, body.message, body.rating, body.review)
    return ok(swap, f"Swap request {PAST_TENSE[body.action]} successfully")


@router.delete("/{swap_id}")
def delete(swap_id: str, user_id: Optional[str] = None, user: dict = Depends(require_auth), db=Depends(get_db)):
    delete_swap_request(db, swap_id, acting_user_id(user, user_id))
    return ok(message="Swap request deleted successfully")
