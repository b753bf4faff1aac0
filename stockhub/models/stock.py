from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockhub.db.database import Base


class SharedPool(Base):
    __tablename__ = "shared_pools"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    department_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    department_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    shop_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    responsible_person: Mapped[str | None] = mapped_column(String(120), nullable=True)
    purchase_unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    pool_id: Mapped[int | None] = mapped_column(
        ForeignKey("shared_pools.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class CodeMapping(Base):
    __tablename__ = "code_mappings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    external_code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    code: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class WarehouseStock(Base):
    __tablename__ = "warehouse_stocks"
    __table_args__ = (UniqueConstraint("product_id", "warehouse_code", name="uq_warehouse_stocks_product_warehouse"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False)
    warehouse_code: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    daily_sales_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    monthly_sales_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_threshold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sluggish_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
