import csv
import io
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Any

from stockhub.schemas.stock import ProductStockGroupOut, StockPageOut
from stockhub.services.pipeline import ProductGroup

EXPORT_HEADER = [
    "code",
    "department",
    "shop",
    "responsible_person",
    "pool_id",
    "warehouse",
    "stock_quantity",
    "daily_sales_quantity",
    "monthly_sales_quantity",
    "reorder_threshold",
    "sluggish_days",
    "purchase_unit_cost",
    "total_stock_quantity",
    "total_daily_sales_quantity",
    "total_monthly_sales_quantity",
    "total_valuation",
]


def _money(value: Decimal | None) -> str:
    return "" if value is None else str(value)


def render_page(groups: Sequence[ProductGroup], total: int) -> StockPageOut:
    return StockPageOut(rows=[ProductStockGroupOut.model_validate(group) for group in groups], total=total)


def build_export_table(groups: Iterable[ProductGroup]) -> list[list[Any]]:
    table: list[list[Any]] = [list(EXPORT_HEADER)]
    for group in groups:
        product_cells = [
            group.code,
            group.department_name,
            group.shop_name or "",
            group.responsible_person or "",
            group.pool_id if group.pool_id is not None else "",
        ]
        total_cells = [
            _money(group.purchase_unit_cost),
            group.total_stock_quantity,
            group.total_daily_sales_quantity,
            group.total_monthly_sales_quantity,
            _money(group.total_valuation),
        ]
        for record in group.records:
            table.append(
                product_cells
                + [
                    record.warehouse_code,
                    record.stock_quantity,
                    record.daily_sales_quantity,
                    record.monthly_sales_quantity,
                    record.reorder_threshold,
                    record.sluggish_days,
                ]
                + total_cells
            )
        if not group.records:
            table.append(product_cells + ["", "", "", "", "", ""] + total_cells)
    return table


def table_to_csv(table: Iterable[Sequence[Any]]) -> str:
    sio = io.StringIO()
    writer = csv.writer(sio)
    for row in table:
        writer.writerow(row)
    return sio.getvalue()
