from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockhub.api.deps import require_permission, scope_for
from stockhub.core.config import settings
from stockhub.core.errors import InvariantViolation, NotFoundOrForbidden, StockError, ValidationError
from stockhub.db.database import get_db
from stockhub.models.stock import Product, WarehouseStock
from stockhub.models.user import User
from stockhub.schemas.stock import (
    CodeMappingImportRequest,
    ImportResultOut,
    ReorderThresholdUpdate,
    SortField,
    SortOrder,
    StockImportRequest,
    StockPageOut,
    StockStatisticsOut,
    WarehouseStockRecordOut,
)
from stockhub.services.importer import StockImportReconciler, import_code_mappings
from stockhub.services.pipeline import StockFilters, run_report, run_statistics
from stockhub.services.report import build_export_table, render_page, table_to_csv

router = APIRouter(prefix="/stock", tags=["Warehouse Stock"])


def raise_http_error(exc: StockError):
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    if isinstance(exc, NotFoundOrForbidden):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    if isinstance(exc, InvariantViolation):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc


def stock_filters(
    warehouse: str | None = Query(default=None, max_length=16),
    is_low_stock: bool | None = None,
    is_sluggish: bool | None = None,
    department_id: int | None = None,
    sku_keyword: str | None = Query(default=None, max_length=64),
    responsible_person: str | None = Query(default=None, max_length=120),
    shop_name: str | None = Query(default=None, max_length=120),
) -> StockFilters:
    return StockFilters(
        warehouse=warehouse.strip() if warehouse and warehouse.strip() else None,
        is_low_stock=is_low_stock,
        is_sluggish=is_sluggish,
        department_id=department_id,
        sku_keyword=sku_keyword,
        responsible_person=responsible_person,
        shop_name=shop_name,
    )


@router.post("/warehouse/import", response_model=ImportResultOut)
def import_warehouse_stock(
    payload: StockImportRequest,
    current_user: User = Depends(require_permission("stock:import")),
    db: Session = Depends(get_db),
):
    try:
        report = StockImportReconciler(db, scope=scope_for(current_user)).run(payload.rows)
    except StockError as exc:
        raise_http_error(exc)
    return ImportResultOut.model_validate(report)


@router.post("/code-mappings/import", response_model=ImportResultOut)
def import_external_code_mappings(
    payload: CodeMappingImportRequest,
    _: User = Depends(require_permission("stock:import")),
    db: Session = Depends(get_db),
):
    try:
        report = import_code_mappings(db, payload.rows)
    except StockError as exc:
        raise_http_error(exc)
    return ImportResultOut.model_validate(report)


@router.get("/warehouse", response_model=StockPageOut)
def list_warehouse_stock(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=settings.report_max_page_size),
    sort_field: SortField | None = None,
    sort_order: SortOrder = "asc",
    filters: StockFilters = Depends(stock_filters),
    current_user: User = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    try:
        rows, total = run_report(
            db,
            filters,
            scope=scope_for(current_user),
            sort_field=sort_field,
            sort_order=sort_order,
            page=page,
            page_size=page_size,
        )
    except StockError as exc:
        raise_http_error(exc)
    return render_page(rows, total)


@router.get("/warehouse/statistics", response_model=StockStatisticsOut)
def warehouse_stock_statistics(
    filters: StockFilters = Depends(stock_filters),
    current_user: User = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    stats = run_statistics(db, filters, scope=scope_for(current_user))
    return StockStatisticsOut.model_validate(stats)


@router.get("/warehouse/export")
def export_warehouse_stock(
    sort_field: SortField | None = None,
    sort_order: SortOrder = "asc",
    filters: StockFilters = Depends(stock_filters),
    current_user: User = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    try:
        rows, _ = run_report(
            db,
            filters,
            scope=scope_for(current_user),
            sort_field=sort_field,
            sort_order=sort_order,
            page=None,
        )
    except StockError as exc:
        raise_http_error(exc)
    return Response(
        content=table_to_csv(build_export_table(rows)),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="warehouse-stock.csv"'},
    )


@router.patch("/warehouse/{record_id}/reorder-threshold", response_model=WarehouseStockRecordOut)
def set_reorder_threshold(
    record_id: int,
    payload: ReorderThresholdUpdate,
    current_user: User = Depends(require_permission("stock:manage")),
    db: Session = Depends(get_db),
):
    query = (
        select(WarehouseStock)
        .join(Product, Product.id == WarehouseStock.product_id)
        .where(WarehouseStock.id == record_id)
    )
    record = db.scalar(scope_for(current_user).apply(query))
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Stock record not found or not accessible")

    record.reorder_threshold = payload.reorder_threshold
    db.commit()
    db.refresh(record)
    return record
