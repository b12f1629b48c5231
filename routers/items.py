import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from auth import get_current_user, require_auth
from database import create_document, get_db, paginate, parse_object_id, to_public, utcnow
from errors import Forbidden, InvalidState, NotFound
from redemption import redeem_item
from routers import ok, search_regex, sort_spec
from schemas import Category, Condition, Item as ItemSchema, Location

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/items", tags=["items"])

ITEM_SORTS = ("created_at", "points", "views", "likes", "title")

# status moves an owner may make by hand; the rest belong to swaps and redemption
OWNER_STATUS_MOVES = {
    "available": {"available", "removed"},
    "removed": {"available", "removed"},
}


def attach_owners(db, items: List[dict], fields: Optional[dict] = None) -> List[dict]:
    fields = fields or {"name": 1, "avatar": 1, "stats.rating": 1}
    owner_ids = {parse_object_id(i["user_id"], "user id") for i in items if i.get("user_id")}
    owners = {str(u["_id"]): to_public(u) for u in db.user.find({"_id": {"$in": list(owner_ids)}}, fields)}
    out = []
    for item in items:
        d = to_public(item)
        d["owner"] = owners.get(item.get("user_id"))
        out.append(d)
    return out


def get_item_or_404(db, item_id: str) -> dict:
    item = db.item.find_one({"_id": parse_object_id(item_id, "item id")})
    if not item:
        raise NotFound("Item not found")
    return item


@router.get("")
def list_items(
    category: Optional[str] = None,
    condition: Optional[str] = None,
    status: str = "available",
    min_points: Optional[int] = None,
    max_points: Optional[int] = None,
    search: Optional[str] = None,
    user_id: Optional[str] = None,
    featured: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db=Depends(get_db),
):
    query: dict = {"status": status}
    if category:
        query["category"] = category
    if condition:
        query["condition"] = condition
    if user_id:
        query["user_id"] = user_id
    if featured:
        query["featured"] = True
    if min_points is not None or max_points is not None:
        query["points"] = {}
        if min_points is not None:
            query["points"]["$gte"] = min_points
        if max_points is not None:
            query["points"]["$lte"] = max_points
    if search:
        rx = search_regex(search)
        query["$or"] = [{"title": rx}, {"description": rx}, {"brand": rx}, {"tags": rx}]

    field, direction = sort_spec(sort_by, sort_order, ITEM_SORTS)
    docs = list(db.item.find(query).sort(field, direction).skip((page - 1) * limit).limit(limit))
    total = db.item.count_documents(query)
    return ok(attach_owners(db, docs), pagination=paginate(page, limit, total))


@router.get("/browse")
def browse_items(
    category: Optional[str] = None,
    condition: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db=Depends(get_db),
):
    query: dict = {"status": "available"}
    if category and category != "all":
        query["category"] = category
    if condition and condition != "all":
        query["condition"] = condition
    if search:
        rx = search_regex(search)
        query["$or"] = [{"title": rx}, {"description": rx}, {"brand": rx}]

    field = "points" if sort_by == "points" else "created_at"
    direction = -1 if sort_order == "desc" else 1
    docs = list(db.item.find(query).sort(field, direction).skip((page - 1) * limit).limit(limit))
    total = db.item.count_documents(query)

    items = []
    for d in attach_owners(db, docs, {"name": 1, "email": 1}):
        owner = d.pop("owner") or {}
        items.append({
            "id": d["id"],
            "title": d.get("title"),
            "description": d.get("description"),
            "images": d.get("images", []),
            "points": d.get("points"),
            "category": d.get("category"),
            "type": d.get("type"),
            "size": d.get("size"),
            "condition": d.get("condition"),
            "brand": d.get("brand") or "Unknown",
            "location": d.get("location"),
            "status": d.get("status", "available"),
            "seller": {"name": owner.get("name", "Unknown"), "email": owner.get("email")},
            "created_at": d.get("created_at"),
        })
    return ok(items, pagination=paginate(page, limit, total))


class CreateItemBody(BaseModel):
    title: str
    description: str
    category: Category
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    type: str
    size: str
    color: Optional[str] = None
    condition: Condition
    tags: List[str] = []
    images: List[str]
    points: int = Field(..., ge=1, le=10000)
    location: Optional[Location] = None


@router.post("", status_code=201)
def create_item(body: CreateItemBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    data = body.model_dump(exclude_none=True)
    item = ItemSchema(user_id=str(user["_id"]), **data)
    item_id = create_document(db, "item", item)
    db.user.update_one({"_id": user["_id"]}, {"$inc": {"stats.items_listed": 1}})
    logger.info("User %s listed item %s", user["_id"], item_id)
    created = get_item_or_404(db, item_id)
    return ok(attach_owners(db, [created])[0], "Item created successfully")


class RedeemBody(BaseModel):
    item_id: Optional[str] = None


@router.post("/redeem")
def redeem(body: RedeemBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    if not body.item_id:
        raise HTTPException(status_code=400, detail="Item ID is required")
    result = redeem_item(db, user["_id"], body.item_id)
    return ok(result, "Item purchased successfully!")


@router.get("/{item_id}")
def get_item(item_id: str, db=Depends(get_db)):
    item = get_item_or_404(db, item_id)
    db.item.update_one({"_id": item["_id"]}, {"$inc": {"views": 1}})
    item["views"] = item.get("views", 0) + 1

    related = list(db.item.find({
        "category": item["category"],
        "user_id": {"$ne": item["user_id"]},
        "status": "available",
        "_id": {"$ne": item["_id"]},
    }).limit(4))

    data = attach_owners(db, [item], {"name": 1, "avatar": 1, "bio": 1, "stats.rating": 1, "location": 1})[0]
    data["related_items"] = attach_owners(db, related)
    return ok(data)


class UpdateItemBody(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    type: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    condition: Optional[Condition] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None
    points: Optional[int] = Field(None, ge=1, le=10000)
    location: Optional[Location] = None
    status: Optional[str] = None


@router.put("/{item_id}")
def update_item(item_id: str, body: UpdateItemBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    item = get_item_or_404(db, item_id)
    if item["user_id"] != str(user["_id"]):
        raise Forbidden("Not authorized to update this item")

    updates = body.model_dump(exclude_none=True)
    if "status" in updates and updates["status"] not in OWNER_STATUS_MOVES.get(item["status"], set()):
        raise InvalidState(f"Cannot change status from {item['status']} to {updates['status']}")

    # validate the merged document before writing it
    merged = {k: v for k, v in item.items() if k in ItemSchema.model_fields}
    merged.update(updates)
    ItemSchema(**merged)

    updates["updated_at"] = utcnow()
    db.item.update_one({"_id": item["_id"]}, {"$set": updates})
    return ok(attach_owners(db, [get_item_or_404(db, item_id)])[0], "Item updated successfully")


@router.delete("/{item_id}")
def delete_item(item_id: str, user: dict = Depends(require_auth), db=Depends(get_db)):
    item = get_item_or_404(db, item_id)
    if item["user_id"] != str(user["_id"]):
        raise Forbidden("Not authorized to delete this item")
    if db.swaprequest.count_documents({"item_id": str(item["_id"]), "status": "pending"}) > 0:
        raise InvalidState("Cannot delete item with pending swap requests")

    db.item.delete_one({"_id": item["_id"]})
    db.user.update_one({"_id": user["_id"]}, {"$inc": {"stats.items_listed": -1}})
    logger.info("User %s deleted item %s", user["_id"], item_id)
    return ok(message="Item deleted successfully")


class ItemActionBody(BaseModel):
    action: str


@router.patch("/{item_id}")
def item_action(item_id: str, body: ItemActionBody, user: Optional[dict] = Depends(get_current_user), db=Depends(get_db)):
    item = get_item_or_404(db, item_id)

    if body.action == "like":
        db.item.update_one({"_id": item["_id"]}, {"$inc": {"likes": 1}})
        return ok(attach_owners(db, [get_item_or_404(db, item_id)])[0], "Item liked successfully")

    if body.action == "feature":
        if user is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        if user.get("role") != "admin":
            raise Forbidden("Only admins can feature items")
        featured = not item.get("featured", False)
        db.item.update_one({"_id": item["_id"]}, {"$set": {"featured": featured, "updated_at": utcnow()}})
        return ok(attach_owners(db, [get_item_or_404(db, item_id)])[0],
                  f"Item {'featured' if featured else 'unfeatured'} successfully")

    raise HTTPException(status_code=400, detail="Invalid action")
