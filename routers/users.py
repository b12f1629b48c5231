import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field

from auth import hash_password, require_auth, require_role
from database import create_document, get_db, paginate, parse_object_id, to_public, utcnow
from ledger import recent_transactions
from routers import ok, public_user, search_regex, sort_spec
from schemas import Location, Preferences, Role, Social, User as UserSchema
from swaps import swap_stats, with_summaries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

USER_SORTS = ("created_at", "name", "email", "points", "last_active")


@router.get("")
def list_users(
    role: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(require_role(["admin"])),
    db=Depends(get_db),
):
    query: dict = {}
    if role:
        query["role"] = role
    if is_active is not None:
        query["is_active"] = is_active
    if search:
        rx = search_regex(search)
        query["$or"] = [{"name": rx}, {"email": rx}]

    field, direction = sort_spec(sort_by, sort_order, USER_SORTS)
    docs = db.user.find(query, {"password_hash": 0}).sort(field, direction).skip((page - 1) * limit).limit(limit)
    total = db.user.count_documents(query)
    return ok([public_user(u) for u in docs], pagination=paginate(page, limit, total))


class CreateUserBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Role = "user"
    bio: Optional[str] = Field(None, max_length=500)
    location: Optional[Location] = None
    preferences: Optional[Preferences] = None
    social: Optional[Social] = None


@router.post("", status_code=201)
def create_user(body: CreateUserBody, admin: dict = Depends(require_role(["admin"])), db=Depends(get_db)):
    email = body.email.lower().strip()
    if db.user.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    extra = body.model_dump(include={"bio", "location", "preferences", "social"}, exclude_none=True)
    user = UserSchema(
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
        **extra,
    )
    user_id = create_document(db, "user", user)
    logger.info("Admin %s created user %s with role %s", admin["_id"], user_id, body.role)
    return ok(public_user(db.user.find_one({"_id": parse_object_id(user_id)})), "User created successfully")


@router.get("/profile")
def get_profile(user: dict = Depends(require_auth), db=Depends(get_db)):
    uid = str(user["_id"])
    items = db.item.find({"user_id": uid}).sort("created_at", -1).limit(5)
    owned = [str(i["_id"]) for i in db.item.find({"user_id": uid}, {"_id": 1})]
    swaps = db.swaprequest.find({
        "$or": [{"requester_id": uid}, {"item_id": {"$in": owned}}],
    }).sort("created_at", -1).limit(5)

    return ok({
        "user": public_user(user),
        "recent_items": [to_public(i) for i in items],
        "recent_swap_requests": [with_summaries(db, s) for s in swaps],
        "swap_stats": swap_stats(db, uid),
        "recent_transactions": [to_public(t) for t in recent_transactions(db, uid)],
    })


class UpdateProfileBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None
    location: Optional[Location] = None
    preferences: Optional[Preferences] = None
    social: Optional[Social] = None


@router.put("/profile")
def update_profile(body: UpdateProfileBody, user: dict = Depends(require_auth), db=Depends(get_db)):
    updates = body.model_dump(exclude_none=True)
    updates["updated_at"] = utcnow()
    db.user.update_one({"_id": user["_id"]}, {"$set": updates})
    updated = db.user.find_one({"_id": user["_id"]})
    if updated is None:
        raise HTTPException(status_code=404, detail="User not found")
    return ok({"user": public_user(updated)}, "Profile updated successfully")
