import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REPORTING_TIMEZONE", "Asia/Kolkata")
os.environ.pop("COMMISSION_RATE", None)

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import get_db
from app.deps_admin import AdminPrincipal, get_current_admin
from app.main import app
from models import Base
from models.merchants import Merchant
from models.orders import Order, OrderItem
from models.users import User, UserRole

ANNAPURNA_ID = "64f1a2b3c4d5e6f7a8b9c0d1"
SHARMA_ID = "64f1a2b3c4d5e6f7a8b9c0d2"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_admin] = lambda: AdminPrincipal(id=1)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ----------------------------------------------------
# Factories
# ----------------------------------------------------
def make_owner(db, name="Ravi Kumar", email="ravi@example.com"):
    owner = User(name=name, email=email, role=UserRole.OWNER)
    db.add(owner)
    db.commit()
    return owner


def make_merchant(db, merchant_id, name, legacy_id=None, owner=None, location="Pune"):
    m = Merchant(id=merchant_id, name=name, legacy_id=legacy_id, location=location,
                 owner_id=owner.id if owner else None)
    db.add(m)
    db.commit()
    return m


def make_order(db, merchant_ref, merchant_name, total, created_at, status="confirmed"):
    o = Order(
        merchant_ref=merchant_ref,
        merchant_name=merchant_name,
        total_amount=Decimal(str(total)) if total is not None else None,
        status=status,
        created_at=created_at,
    )
    if total:
        o.items.append(OrderItem(name="Thali", unit_price=Decimal(str(total)), quantity=1))
    db.add(o)
    db.commit()
    return o


@pytest.fixture
def annapurna(db):
    """
    Tre ordini dello stesso merchant, il 3 marzo 2025, in tre forme diverse:
    ID canonico, vecchio ID numerico, solo nome (minuscolo).
    """
    owner = make_owner(db)
    merchant = make_merchant(db, ANNAPURNA_ID, "Annapurna Mess", legacy_id=17, owner=owner)
    day3 = datetime(2025, 3, 3, 12, 30)
    make_order(db, ANNAPURNA_ID, "Annapurna Mess", 300, day3)
    make_order(db, "17", None, 150, day3)
    make_order(db, None, "annapurna mess", 50, day3)
    return merchant
