import itertools
import os
import tempfile

# settings are read at import time, so they go in before the app is imported
_DB_DIR = tempfile.mkdtemp(prefix="cashbook-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "cashbook.db")
os.environ["IDENTITY_JWT_SECRET"] = "test-secret"
os.environ["IDENTITY_JWT_ALGORITHM"] = "HS256"
os.environ["IDENTITY_JWT_AUDIENCE"] = ""

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import event

from cashbook import businesses, models, schemas
from cashbook.db import Base, SessionLocal, engine


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    # Postgres always enforces these; SQLite only when asked
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# imported after the listener so the schema-creating connection gets it too
from cashbook.main import app


def token_for(external_ref, email=None):
    claims = {"sub": external_ref}
    if email:
        claims["email"] = email
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def bearer(external_ref, email=None):
    return {"Authorization": f"Bearer {token_for(external_ref, email)}"}


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        user = models.User(external_ref=f"ext-{n}", email=f"user{n}@acme.io", name=name or f"User {n}")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("Owner")


@pytest.fixture
def business(db, owner):
    return businesses.create_business(db, schemas.BusinessCreate(name="Acme Traders"), owner)


@pytest.fixture
def cash_book(db, business):
    return db.query(models.Book).filter(models.Book.business_id == business.id).one()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    """Sync a user through the API and return their auth headers and profile."""

    def _register(external_ref, email, name):
        headers = bearer(external_ref, email)
        resp = client.post("/api/users/sync", headers=headers,
                           json={"external_ref": external_ref, "email": email, "name": name})
        assert resp.status_code == 200, resp.text
        return headers, resp.json()

    return _register
