"""Filter, group, aggregate, sort and paginate warehouse stock per product.

Low-stock and sluggish are properties of individual warehouse records while the
report is grouped by product, so filtering runs twice: a coarse pass selects the
products that qualify under an any/all rule over their records, then the same
predicate is re-applied per record to decide which records are displayed.
Everything after the store fetches is a pure function over plain rows.
"""

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockhub.core.config import settings
from stockhub.core.errors import ValidationError
from stockhub.models.stock import Product, WarehouseStock
from stockhub.services.scope import UNRESTRICTED, AccessScope
from stockhub.services.sluggish import is_sluggish

SORT_FIELDS = (
    "total_stock_quantity",
    "total_daily_sales_quantity",
    "total_monthly_sales_quantity",
    "total_valuation",
)
SORT_ORDERS = ("asc", "desc")


@dataclass(frozen=True)
class StockFilters:
    warehouse: str | None = None
    is_low_stock: bool | None = None
    is_sluggish: bool | None = None
    department_id: int | None = None
    sku_keyword: str | None = None
    responsible_person: str | None = None
    shop_name: str | None = None

    @property
    def has_record_filter(self) -> bool:
        return self.is_low_stock is not None or self.is_sluggish is not None


@dataclass(frozen=True)
class StockRow:
    product_id: int
    warehouse_code: str
    stock_quantity: int
    reorder_threshold: int = 0
    sluggish_days: int = 0
    daily_sales_quantity: int = 0
    monthly_sales_quantity: int = 0
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, record: WarehouseStock) -> "StockRow":
        return cls(
            id=record.id,
            product_id=record.product_id,
            warehouse_code=record.warehouse_code,
            stock_quantity=record.stock_quantity,
            reorder_threshold=record.reorder_threshold,
            sluggish_days=record.sluggish_days,
            daily_sales_quantity=record.daily_sales_quantity,
            monthly_sales_quantity=record.monthly_sales_quantity,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


@dataclass
class ProductGroup:
    product_id: int
    code: str
    department_id: int | None
    department_name: str
    shop_name: str | None
    responsible_person: str | None
    purchase_unit_cost: Decimal | None
    pool_id: int | None = None
    pool_member_count: int = 0
    records: list[StockRow] = field(default_factory=list)
    total_stock_quantity: int = 0
    total_daily_sales_quantity: int = 0
    total_monthly_sales_quantity: int = 0
    total_valuation: Decimal | None = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductGroup":
        return cls(
            product_id=product.id,
            code=product.code,
            department_id=product.department_id,
            department_name=product.department_name,
            shop_name=product.shop_name,
            responsible_person=product.responsible_person,
            purchase_unit_cost=product.purchase_unit_cost,
            pool_id=product.pool_id,
        )


@dataclass
class StockStatistics:
    total_stock_quantity: int = 0
    total_daily_sales_quantity: int = 0
    total_monthly_sales_quantity: int = 0
    total_valuation: Decimal = Decimal("0")


RecordPredicate = Callable[[StockRow], bool]


def is_low_stock_row(row: StockRow) -> bool:
    return row.stock_quantity <= row.reorder_threshold


def _sluggish_predicate(threshold_days: int) -> RecordPredicate:
    return lambda row: is_sluggish(row.sluggish_days, threshold_days)


def record_filters(filters: StockFilters, threshold_days: int) -> list[tuple[RecordPredicate, bool]]:
    """Active record-level predicates with the truth value each must have, low-stock first."""
    active: list[tuple[RecordPredicate, bool]] = []
    if filters.is_low_stock is not None:
        active.append((is_low_stock_row, filters.is_low_stock))
    if filters.is_sluggish is not None:
        active.append((_sluggish_predicate(threshold_days), filters.is_sluggish))
    return active


def in_warehouse(rows: Iterable[StockRow], warehouse: str | None) -> list[StockRow]:
    if not warehouse:
        return list(rows)
    return [row for row in rows if row.warehouse_code == warehouse]


def qualifying_products(rows: Iterable[StockRow], predicate: RecordPredicate, wanted: bool) -> set[int]:
    """``wanted=True``: some record matches. ``wanted=False``: every record fails."""
    by_product: dict[int, list[StockRow]] = defaultdict(list)
    for row in rows:
        by_product[row.product_id].append(row)
    if wanted:
        return {product_id for product_id, items in by_product.items() if any(predicate(r) for r in items)}
    return {product_id for product_id, items in by_product.items() if not any(predicate(r) for r in items)}


def coarse_candidates(rows: Iterable[StockRow], filters: StockFilters, threshold_days: int) -> set[int]:
    scoped = in_warehouse(rows, filters.warehouse)
    candidates = {row.product_id for row in scoped}
    for predicate, wanted in record_filters(filters, threshold_days):
        remaining = [row for row in scoped if row.product_id in candidates]
        candidates = qualifying_products(remaining, predicate, wanted)
    return candidates


def record_is_displayed(row: StockRow, filters: StockFilters, threshold_days: int) -> bool:
    return all(predicate(row) == wanted for predicate, wanted in record_filters(filters, threshold_days))


def attach_records(
    groups: Sequence[ProductGroup],
    rows: Iterable[StockRow],
    filters: StockFilters,
    threshold_days: int,
) -> list[ProductGroup]:
    by_id = {group.product_id: group for group in groups}
    for row in in_warehouse(rows, filters.warehouse):
        group = by_id.get(row.product_id)
        if group is not None and record_is_displayed(row, filters, threshold_days):
            group.records.append(row)
    if filters.has_record_filter:
        return [group for group in groups if group.records]
    return list(groups)


def aggregate(group: ProductGroup) -> ProductGroup:
    group.total_stock_quantity = sum(row.stock_quantity for row in group.records)
    group.total_daily_sales_quantity = sum(row.daily_sales_quantity for row in group.records)
    group.total_monthly_sales_quantity = sum(row.monthly_sales_quantity for row in group.records)
    if group.purchase_unit_cost is None:
        group.total_valuation = None
    else:
        group.total_valuation = Decimal(group.purchase_unit_cost) * group.total_stock_quantity
    return group


def sort_groups(groups: Sequence[ProductGroup], sort_field: str | None, sort_order: str = "asc") -> list[ProductGroup]:
    if sort_field is None:
        return list(groups)
    if sort_field not in SORT_FIELDS:
        raise ValidationError(f"Unsupported sort field: {sort_field}")
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"Unsupported sort order: {sort_order}")
    present = [group for group in groups if getattr(group, sort_field) is not None]
    missing = [group for group in groups if getattr(group, sort_field) is None]
    present.sort(key=lambda group: getattr(group, sort_field), reverse=sort_order == "desc")
    return present + missing


def paginate(items: Sequence, page: int, page_size: int) -> list:
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be at least 1")
    start = (page - 1) * page_size
    return list(items[start : start + page_size])


def summarize(groups: Iterable[ProductGroup]) -> StockStatistics:
    stats = StockStatistics()
    for group in groups:
        stats.total_stock_quantity += group.total_stock_quantity
        stats.total_daily_sales_quantity += group.total_daily_sales_quantity
        stats.total_monthly_sales_quantity += group.total_monthly_sales_quantity
        if group.total_valuation is not None:
            stats.total_valuation += group.total_valuation
    return stats


def _fetch_coarse_rows(db: Session, warehouse: str | None) -> list[StockRow]:
    query = select(
        WarehouseStock.product_id,
        WarehouseStock.warehouse_code,
        WarehouseStock.stock_quantity,
        WarehouseStock.reorder_threshold,
        WarehouseStock.sluggish_days,
    )
    if warehouse:
        query = query.where(WarehouseStock.warehouse_code == warehouse)
    return [
        StockRow(
            product_id=product_id,
            warehouse_code=warehouse_code,
            stock_quantity=stock_quantity,
            reorder_threshold=reorder_threshold,
            sluggish_days=sluggish_days,
        )
        for product_id, warehouse_code, stock_quantity, reorder_threshold, sluggish_days in db.execute(query).all()
    ]


def _fetch_products(db: Session, candidate_ids: set[int], filters: StockFilters, scope: AccessScope) -> list[Product]:
    if not candidate_ids:
        return []
    query = select(Product).where(Product.id.in_(sorted(candidate_ids)))
    if filters.department_id is not None:
        query = query.where(Product.department_id == filters.department_id)
    if filters.sku_keyword:
        query = query.where(Product.code.contains(filters.sku_keyword.strip(), autoescape=True))
    if filters.responsible_person:
        query = query.where(Product.responsible_person.contains(filters.responsible_person.strip(), autoescape=True))
    if filters.shop_name:
        query = query.where(Product.shop_name.contains(filters.shop_name.strip(), autoescape=True))
    query = scope.apply(query).order_by(Product.created_at.desc(), Product.id.desc())
    return list(db.scalars(query).all())


def _fetch_records(db: Session, product_ids: list[int], warehouse: str | None) -> list[StockRow]:
    if not product_ids:
        return []
    query = (
        select(WarehouseStock)
        .where(WarehouseStock.product_id.in_(product_ids))
        .order_by(WarehouseStock.warehouse_code.asc(), WarehouseStock.id.asc())
    )
    if warehouse:
        query = query.where(WarehouseStock.warehouse_code == warehouse)
    return [StockRow.from_model(record) for record in db.scalars(query).all()]


def _pool_member_counts(db: Session, pool_ids: set[int]) -> dict[int, int]:
    if not pool_ids:
        return {}
    rows = db.execute(
        select(Product.pool_id, func.count(Product.id))
        .where(Product.pool_id.in_(sorted(pool_ids)))
        .group_by(Product.pool_id)
    ).all()
    return {int(pool_id): int(count) for pool_id, count in rows}


def collect_groups(
    db: Session,
    filters: StockFilters,
    scope: AccessScope = UNRESTRICTED,
    threshold_days: int | None = None,
) -> list[ProductGroup]:
    days = settings.sluggish_threshold_days if threshold_days is None else threshold_days
    candidates = coarse_candidates(_fetch_coarse_rows(db, filters.warehouse), filters, days)
    products = _fetch_products(db, candidates, filters, scope)

    groups = [ProductGroup.from_product(product) for product in products]
    member_counts = _pool_member_counts(db, {g.pool_id for g in groups if g.pool_id is not None})
    for group in groups:
        if group.pool_id is not None:
            group.pool_member_count = member_counts.get(group.pool_id, 0)

    records = _fetch_records(db, [g.product_id for g in groups], filters.warehouse)
    return [aggregate(group) for group in attach_records(groups, records, filters, days)]


def run_report(
    db: Session,
    filters: StockFilters,
    *,
    scope: AccessScope = UNRESTRICTED,
    sort_field: str | None = None,
    sort_order: str = "asc",
    page: int | None = 1,
    page_size: int | None = 10,
) -> tuple[list[ProductGroup], int]:
    """Grouped report rows and the total product count. ``page=None`` disables pagination."""
    groups = sort_groups(collect_groups(db, filters, scope), sort_field, sort_order)
    total = len(groups)
    if page is None or page_size is None:
        return groups, total
    return paginate(groups, page, page_size), total


def run_statistics(db: Session, filters: StockFilters, *, scope: AccessScope = UNRESTRICTED) -> StockStatistics:
    return summarize(collect_groups(db, filters, scope))
