"""Pytest fixtures for the settlement backend tests."""

import os

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/marketplace_test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("BANK_DATA_ENCRYPTION_KEY", "test-bank-data-key")

from datetime import datetime

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from fake_mongo import FakeDatabase
from models.product import ProductInDB
from models.user import UserInDB


@pytest.fixture(autouse=True)
def fast_notifications(monkeypatch):
    """Notification retries must not sleep during tests."""
    from config import env

    monkeypatch.setattr(env, "NOTIFICATION_RETRY_DELAY_SECONDS", 0)


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def make_user(db):
    """Insert a user document and return it."""

    async def _make(role="buyer", name=None, **overrides):
        user = UserInDB(
            name=name or f"{role.title()} {ObjectId()}",
            email=f"{role}-{ObjectId()}@example.com",
            role=role,
            created_at=datetime.utcnow(),
            **overrides,
        ).model_dump(mode="python")
        user["role"] = role
        await db.users.insert_one(user)
        return user

    return _make


@pytest.fixture
def make_product(db):
    """Insert a catalog product owned by `seller`."""

    async def _make(seller, name="Widget", price_cents=10000, stock=10, variants=None):
        product = ProductInDB(
            name=name,
            seller_id=seller["_id"],
            price_cents=price_cents,
            stock=stock,
            variants=variants or [],
        ).model_dump()
        for variant in product["variants"]:
            variant["_id"] = ObjectId()
        await db.products.insert_one(product)
        return product

    return _make


@pytest.fixture
def actors(make_user):
    """A buyer, a seller and the platform admin."""
    import asyncio

    async def _seed():
        return {
            "buyer": await make_user("buyer", name="Bea Buyer"),
            "seller": await make_user("seller", name="Sam Seller"),
            "admin": await make_user("admin", name="Ada Admin"),
        }

    return asyncio.run(_seed())


@pytest.fixture
def api(db):
    """TestClient wired to the in-memory database. Startup hooks are not run."""
    from database import get_db
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Build a bearer header for a user document."""
    from utils.jwt import create_access_token

    def _auth(user):
        return {"Authorization": f"Bearer {create_access_token(user['_id'], user['role'])}"}

    return _auth
