import hmac
import secrets
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, EmailStr, Field

import config
from auth import clear_auth_cookie, generate_token, get_current_user, hash_password, set_auth_cookie, verify_password
from database import create_document, get_db, parse_object_id, to_public, utcnow
from ledger import recent_transactions, transaction_stats
from routers import ok, public_user
from schemas import User as UserSchema, UserStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class AdminLoginBody(BaseModel):
    passkey: Optional[str] = None


def _login(response: Response, user: dict) -> None:
    set_auth_cookie(response, generate_token(user))


@router.post("/register", status_code=201)
def register(body: RegisterBody, response: Response, db=Depends(get_db)):
    email = body.email.lower().strip()
    if db.user.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")

    user = UserSchema(
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        points=config.STARTING_POINTS,
        role="user",
        last_active=utcnow(),
    )
    user_id = create_document(db, "user", user)
    created = db.user.find_one({"_id": parse_object_id(user_id)})
    _login(response, created)
    logger.info("Registered user %s", user_id)
    return ok({"user": public_user(created)}, "User registered successfully")


@router.post("/login")
def login(body: LoginBody, response: Response, db=Depends(get_db)):
    user = db.user.find_one({"email": body.email.lower().strip()})
    if not user or not verify_password(body.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    db.user.update_one({"_id": user["_id"]}, {"$set": {"last_active": utcnow()}})
    _login(response, user)
    return ok({"user": public_user(user)}, "Login successful")


@router.post("/logout")
def logout(response: Response):
    clear_auth_cookie(response)
    return ok(message="Logged out")


@router.post("/admin-login")
def admin_login(body: AdminLoginBody, response: Response, db=Depends(get_db)):
    if not body.passkey:
        raise HTTPException(status_code=400, detail="Passkey is required")
    if not config.ADMIN_PASSKEY or not hmac.compare_digest(body.passkey.encode(), config.ADMIN_PASSKEY.encode()):
        logger.warning("Rejected admin login attempt")
        raise HTTPException(status_code=401, detail="Invalid passkey")

    user = db.user.find_one({"role": "admin"})
    if not user:
        admin = UserSchema(
            name="Admin User",
            email="admin@rewear.com",
            password_hash=hash_password(secrets.token_urlsafe(32)),
            role="admin",
            points=10000,
            stats=UserStats(rating=5.0),
        )
        user = db.user.find_one({"_id": parse_object_id(create_document(db, "user", admin))})
        logger.info("Created default admin user %s", user["_id"])

    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Account is deactivated")
    _login(response, user)
    return ok({"user": public_user(user)}, "Admin login successful")


@router.get("/me")
def me(user: Optional[dict] = Depends(get_current_user), db=Depends(get_db)):
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return ok({
        "user": public_user(user),
        "recent_transactions": [to_public(t) for t in recent_transactions(db, user["_id"])],
        "transaction_stats": transaction_stats(db, user["_id"]),
    })
