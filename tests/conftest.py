import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from auth import AuthUser, create_token
from main import app
from product_cache import product_cache
from schemas import Product


@pytest.fixture
def mongo():
    db = mongomock.MongoClient()["techfarm_test"]
    database.ensure_indexes(db)
    return db


@pytest.fixture
def client(mongo):
    app.dependency_overrides[database.get_db] = lambda: mongo
    product_cache.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    product_cache.clear()


def make_user(role="user", name="Asha"):
    return AuthUser(id=str(ObjectId()), email=f"{name.lower()}@techfarm.in", name=name, role=role)


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token(user.model_dump())}"}


@pytest.fixture
def customer():
    return make_user()


@pytest.fixture
def other_customer():
    return make_user(name="Ravi")


@pytest.fixture
def admin():
    return make_user(role="admin", name="Meera")


@pytest.fixture
def make_product(mongo):
    def _make(name="Drip Kit", price=300.0, stock=10, category="agri-tech", **extra):
        product = Product(name=name, description=f"{name} for the farm", price=price,
                          stock=stock, category=category, **extra)
        return database.create_document(mongo, "product", product)
    return _make


def stock_of(mongo, product_id):
    return mongo["product"].find_one({"_id": ObjectId(product_id)})["stock"]


ADDRESS = {
    "name": "Asha K",
    "phone": "9876543210",
    "street": "12 Mill Road",
    "city": "Pune",
    "state": "MH",
    "zip_code": "411001",
}
