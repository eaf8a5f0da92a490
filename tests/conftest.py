import os

# The app module builds its engine and settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SEED_CATALOG", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.database import Base
from services.storefront.models import Category, Product, User, UserRole
from services.storefront.schemas import DeliveryAddress


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_customer(db):
    def _make(email="asha@example.com", name="Asha", role=UserRole.CUSTOMER):
        user = User(email=email, name=name, role=role.value)
        db.add(user)
        db.commit()
        return user.id

    return _make


@pytest.fixture
def customer_id(make_customer):
    return make_customer()


@pytest.fixture
def admin_id(make_customer):
    return make_customer(email="admin@example.com", name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def make_product(db):
    category = Category(name="Staples")
    db.add(category)
    db.commit()

    def _make(name, price, stock):
        product = Product(name=name, price=price, stock=stock, category_id=category.id)
        db.add(product)
        db.commit()
        return product.id

    return _make


@pytest.fixture
def address():
    return DeliveryAddress(
        street="12 MG Road",
        phone="9876543210",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
    )
