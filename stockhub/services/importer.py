import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockhub.core.config import settings
from stockhub.core.errors import RowError, ValidationError
from stockhub.core.locks import KeyedLockArena, stock_key, stock_locks
from stockhub.models.stock import CodeMapping, WarehouseStock
from stockhub.services.identity import (
    EXTERNAL_CODE_COLUMNS,
    PRIMARY_CODE_COLUMNS,
    IdentityResolver,
    clean_cell,
    detect_identity_columns,
)
from stockhub.services.scope import UNRESTRICTED, AccessScope
from stockhub.services.sluggish import next_sluggish_days

logger = logging.getLogger(__name__)

WAREHOUSE_COLUMNS = ("warehouse", "仓库名称")
STOCK_COLUMNS = ("stock", "在库件数")
DAILY_SALES_COLUMNS = ("daily_sales", "dailySales", "销售出库件数")
MONTHLY_SALES_COLUMNS = ("monthly_sales", "monthlySales", "近30日出库商品件数", "近30天销售出库件数")


@dataclass
class ImportReport:
    success: int = 0
    fail: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    error_limit: int = 20

    def record_failure(self, row_number: int, reason: str) -> None:
        self.fail += 1
        if len(self.errors) < self.error_limit:
            self.errors.append(f"row {row_number}: {reason}")


def first_present(row: Mapping[str, Any], names: Sequence[str]) -> Any:
    for name in names:
        value = row.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_quantity(value: Any, label: str) -> int:
    if value is None:
        raise RowError(f"{label} is required")
    if isinstance(value, bool):
        raise RowError(f"{label} must be a number")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise RowError(f"{label} must be a number")
        number = math.floor(value)
    else:
        text = str(value).strip().replace(",", "")
        try:
            parsed = Decimal(text)
        except InvalidOperation as exc:
            raise RowError(f"{label} must be a number") from exc
        if not parsed.is_finite():
            raise RowError(f"{label} must be a number")
        number = math.floor(parsed)
    if number < 0:
        raise RowError(f"{label} must not be negative")
    return number


def normalize_warehouse_code(warehouse_name: str, length: int | None = None) -> str:
    size = settings.warehouse_code_length if length is None else length
    return warehouse_name.strip()[:size]


def _check_batch_size(rows: Sequence[Any]) -> None:
    if not rows:
        raise ValidationError("Import contains no rows")
    if len(rows) > settings.import_max_rows:
        raise ValidationError(f"Import exceeds the limit of {settings.import_max_rows} rows")


class StockImportReconciler:
    def __init__(
        self,
        db: Session,
        scope: AccessScope = UNRESTRICTED,
        locks: KeyedLockArena = stock_locks,
    ) -> None:
        self.db = db
        self.scope = scope
        self.locks = locks

    def run(self, rows: Sequence[Mapping[str, Any]]) -> ImportReport:
        _check_batch_size(rows)
        columns = detect_identity_columns([row for row in rows if isinstance(row, Mapping)])
        resolver = IdentityResolver(self.db, columns, self.scope)
        report = ImportReport(error_limit=settings.import_error_limit)
        # sluggish days are computed from the state each key had before this batch
        prior_days: dict[tuple[int, str], int | None] = {}

        for index, row in enumerate(rows):
            row_number = index + 2
            try:
                imported = self._import_row(row, resolver, prior_days)
            except RowError as exc:
                self.db.rollback()
                report.record_failure(row_number, exc.message)
                continue
            except Exception:
                self.db.rollback()
                logger.exception("Unexpected failure importing stock row %s", row_number)
                report.record_failure(row_number, "unexpected error while importing row")
                continue
            if imported:
                report.success += 1
            else:
                report.skipped += 1

        logger.info(
            "Stock import finished: %s imported, %s failed, %s skipped",
            report.success,
            report.fail,
            report.skipped,
        )
        return report

    def _import_row(
        self,
        row: Any,
        resolver: IdentityResolver,
        prior_days: dict[tuple[int, str], int | None],
    ) -> bool:
        if not isinstance(row, Mapping):
            raise RowError("row is not a record")

        product_id = resolver.resolve(row)
        stock = parse_quantity(first_present(row, STOCK_COLUMNS), "stock quantity")
        daily_sales = parse_quantity(first_present(row, DAILY_SALES_COLUMNS), "daily sales quantity")
        monthly_sales = parse_quantity(first_present(row, MONTHLY_SALES_COLUMNS), "monthly sales quantity")

        warehouse_name = clean_cell(first_present(row, WAREHOUSE_COLUMNS))
        if warehouse_name is None:
            raise RowError("warehouse name is blank")
        warehouse_code = normalize_warehouse_code(warehouse_name)
        if warehouse_code == settings.national_warehouse_code:
            return False

        key = (product_id, warehouse_code)
        with self.locks.hold(stock_key(product_id, warehouse_code)):
            record = self.db.scalar(
                select(WarehouseStock)
                .where(
                    WarehouseStock.product_id == product_id,
                    WarehouseStock.warehouse_code == warehouse_code,
                )
                .with_for_update()
            )
            if key not in prior_days:
                prior_days[key] = record.sluggish_days if record is not None else None
            sluggish_days = next_sluggish_days(prior_days[key], stock, daily_sales)

            if record is None:
                record = WarehouseStock(
                    product_id=product_id,
                    warehouse_code=warehouse_code,
                    stock_quantity=stock,
                    daily_sales_quantity=daily_sales,
                    monthly_sales_quantity=monthly_sales,
                    sluggish_days=sluggish_days,
                )
                self.db.add(record)
            else:
                record.stock_quantity = stock
                record.daily_sales_quantity = daily_sales
                record.monthly_sales_quantity = monthly_sales
                record.sluggish_days = sluggish_days
            try:
                self.db.commit()
            except IntegrityError as exc:
                # another worker inserted the same key between our read and write
                self.db.rollback()
                prior_days.pop(key, None)
                raise RowError(f'stock record for warehouse "{warehouse_code}" was written concurrently') from exc
        return True


def import_code_mappings(db: Session, rows: Sequence[Mapping[str, Any]]) -> ImportReport:
    _check_batch_size(rows)
    report = ImportReport(error_limit=settings.import_error_limit)
    for index, row in enumerate(rows):
        row_number = index + 2
        if not isinstance(row, Mapping):
            report.record_failure(row_number, "row is not a record")
            continue
        external_code = clean_cell(first_present(row, EXTERNAL_CODE_COLUMNS))
        code = clean_cell(first_present(row, PRIMARY_CODE_COLUMNS))
        if external_code is None:
            report.record_failure(row_number, "external code is blank")
            continue
        if code is None:
            report.record_failure(row_number, "product code is blank")
            continue

        mapping = db.scalar(select(CodeMapping).where(CodeMapping.external_code == external_code))
        if mapping is None:
            db.add(CodeMapping(external_code=external_code, code=code))
        else:
            mapping.code = code
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            report.record_failure(row_number, f'external code "{external_code}" was written concurrently')
            continue
        report.success += 1

    logger.info("Code mapping import finished: %s imported, %s failed", report.success, report.fail)
    return report
