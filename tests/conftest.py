import os

os.environ.setdefault("JWT_SECRET", "test-secret")

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import generate_token, hash_password
from database import create_document, get_db, parse_object_id
from main import app
from schemas import Item as ItemSchema, User as UserSchema


@pytest.fixture
def db():
    return mongomock.MongoClient()["rewear_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(name=None, points=100, role="user", password="secret123", **extra):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        user = UserSchema(
            name=name,
            email=f"{name.lower()}@rewear.io",
            password_hash=hash_password(password),
            points=points,
            role=role,
            **extra,
        )
        user_id = create_document(db, "user", user)
        return db.user.find_one({"_id": parse_object_id(user_id)})
    return _make


@pytest.fixture
def make_item(db):
    def _make(owner, points=50, status="available", title="Denim jacket", category="clothing", **extra):
        item = ItemSchema(
            title=title,
            description="Worn twice, great condition",
            category=category,
            type="jacket",
            size="M",
            condition="like_new",
            images=["https://img.rewear.io/1.jpg"],
            user_id=str(owner["_id"]),
            status=status,
            points=points,
            **extra,
        )
        item_id = create_document(db, "item", item)
        return db.item.find_one({"_id": parse_object_id(item_id)})
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {generate_token(user)}"}
    return _headers