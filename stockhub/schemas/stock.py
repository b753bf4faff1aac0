from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

SortField = Literal[
    "total_stock_quantity",
    "total_daily_sales_quantity",
    "total_monthly_sales_quantity",
    "total_valuation",
]
SortOrder = Literal["asc", "desc"]


class StockImportRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(description="Decoded spreadsheet rows keyed by header")


class CodeMappingImportRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(description="Rows carrying an external code and the product code it maps to")


class ImportResultOut(BaseModel):
    success: int
    fail: int
    skipped: int = 0
    errors: list[str]

    model_config = {"from_attributes": True}


class WarehouseStockOut(BaseModel):
    id: int
    warehouse_code: str
    stock_quantity: int
    daily_sales_quantity: int
    monthly_sales_quantity: int
    reorder_threshold: int
    sluggish_days: int
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class ProductStockGroupOut(BaseModel):
    product_id: int
    code: str
    department_id: int | None
    department_name: str
    shop_name: str | None
    responsible_person: str | None
    purchase_unit_cost: Decimal | None
    pool_id: int | None
    pool_member_count: int
    records: list[WarehouseStockOut]
    total_stock_quantity: int
    total_daily_sales_quantity: int
    total_monthly_sales_quantity: int
    total_valuation: Decimal | None

    model_config = {"from_attributes": True}


class StockPageOut(BaseModel):
    rows: list[ProductStockGroupOut]
    total: int


class StockStatisticsOut(BaseModel):
    total_stock_quantity: int
    total_daily_sales_quantity: int
    total_monthly_sales_quantity: int
    total_valuation: Decimal

    model_config = {"from_attributes": True}


class ReorderThresholdUpdate(BaseModel):
    reorder_threshold: int = Field(ge=0)


class WarehouseStockRecordOut(WarehouseStockOut):
    product_id: int


class PoolMergeRequest(BaseModel):
    codes: list[str] = Field(min_length=2, description="Product codes that should draw from one pool")


class PoolSplitRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class PoolProvisionRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    quantity: int = Field(default=0, ge=0)


class PoolQuantityUpdate(BaseModel):
    quantity: int = Field(ge=0)


class PoolMemberOut(BaseModel):
    product_id: int
    code: str
    department_name: str
    shop_name: str | None

    model_config = {"from_attributes": True}


class SharedPoolOut(BaseModel):
    id: int
    quantity: int
    member_count: int
    is_shared: bool
    members: list[PoolMemberOut]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SharedPoolPageOut(BaseModel):
    rows: list[SharedPoolOut]
    total: int


class ProductPoolInfoOut(BaseModel):
    product_id: int
    code: str
    department_name: str
    pool_id: int | None
    quantity: int
    is_independent: bool
    shared_with: list[PoolMemberOut]

    model_config = {"from_attributes": True}
