"""
Authentication helpers: password hashing, JWT cookies and role guards.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import timedelta
from typing import List, Optional

import jwt
from fastapi import Depends, Request, Response

import config
from database import get_db, parse_object_id, utcnow
from errors import AuthenticationRequired, Forbidden, ValidationFailed

logger = logging.getLogger(__name__)

PBKDF2_ROUNDS = 120_000


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash or "$" not in password_hash:
        return False
    salt, expected = password_hash.split("$", 1)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS)
    return hmac.compare_digest(digest.hex(), expected)


def generate_token(user: dict) -> str:
    payload = {
        "id": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role", "user"),
        "name": user.get("name"),
        "exp": utcnow() + timedelta(days=config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.COOKIE_NAME,
        value=token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="strict",
        max_age=config.JWT_EXPIRES_DAYS * 24 * 60 * 60,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(config.COOKIE_NAME)


def _read_token(request: Request) -> Optional[str]:
    token = request.cookies.get(config.COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def get_current_user(request: Request, db=Depends(get_db)) -> Optional[dict]:
    """Resolve the acting user, or None when the request is anonymous or the token is bad."""
    token = _read_token(request)
    if not token:
        return None
    decoded = verify_token(token)
    if not decoded or not decoded.get("id"):
        return None
    try:
        user_id = parse_object_id(decoded["id"], "user id")
    except ValidationFailed:
        return None
    user = db.user.find_one({"_id": user_id})
    if not user or not user.get("is_active", True):
        return None
    return user


def require_auth(request: Request, db=Depends(get_db)) -> dict:
    token = _read_token(request)
    if not token:
        raise AuthenticationRequired()
    if not verify_token(token):
        raise AuthenticationRequired("Invalid token")
    user = get_current_user(request, db)
    if user is None:
        raise AuthenticationRequired("User not found or inactive")
    return user


def require_role(roles: List[str]):
    def dep(user: dict = Depends(require_auth)) -> dict:
        if user.get("role") not in roles:
            logger.warning("User %s with role %s denied, needs one of %s", user["_id"], user.get("role"), roles)
            raise Forbidden("Insufficient permissions")
        return user
    return dep
