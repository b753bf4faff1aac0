"""Shared fixtures: in-memory SQLite store, seeded products and an authenticated client."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SQL_ECHO"] = "0"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stockhub.core.security import create_access_token
from stockhub.db.database import Base, SessionLocal, engine, get_db
from stockhub.models import Product, SharedPool, User, UserRole, WarehouseStock


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_product(db):
    """Factory for products; every product lands in department 1 unless told otherwise."""

    def _make(
        code: str,
        department_id: int | None = 1,
        cost: str | None = None,
        pool: SharedPool | None = None,
        shop_name: str | None = None,
        responsible_person: str | None = None,
    ) -> Product:
        product = Product(
            code=code,
            department_id=department_id,
            department_name=f"Dept {department_id}" if department_id is not None else "",
            shop_name=shop_name,
            responsible_person=responsible_person,
            purchase_unit_cost=Decimal(cost) if cost is not None else None,
            pool_id=pool.id if pool is not None else None,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_record(db):
    def _make(
        product: Product,
        warehouse_code: str,
        stock: int,
        threshold: int = 0,
        sluggish_days: int = 0,
        daily_sales: int = 0,
        monthly_sales: int = 0,
    ) -> WarehouseStock:
        record = WarehouseStock(
            product_id=product.id,
            warehouse_code=warehouse_code,
            stock_quantity=stock,
            reorder_threshold=threshold,
            sluggish_days=sluggish_days,
            daily_sales_quantity=daily_sales,
            monthly_sales_quantity=monthly_sales,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    return _make


@pytest.fixture
def make_pool(db):
    def _make(quantity: int = 0) -> SharedPool:
        pool = SharedPool(quantity=quantity)
        db.add(pool)
        db.commit()
        db.refresh(pool)
        return pool

    return _make


@pytest.fixture
def make_user(db):
    def _make(
        username: str,
        role: UserRole = UserRole.MANAGER,
        department_id: int | None = 1,
        is_global_access: bool = False,
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username,
            role=role,
            department_id=department_id,
            is_global_access=is_global_access,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(db):
    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    from stockhub.main import app

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(str(user.id), user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a file-backed SQLite database so each thread gets its own connection."""
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'stockhub.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(bind=file_engine, autoflush=False, autocommit=False)
    finally:
        file_engine.dispose()
