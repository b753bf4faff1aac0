from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockhub.api.deps import require_permission, scope_for
from stockhub.api.routes.stock import raise_http_error
from stockhub.core.errors import StockError
from stockhub.db.database import get_db
from stockhub.models.user import User
from stockhub.schemas.stock import (
    PoolMergeRequest,
    PoolProvisionRequest,
    PoolQuantityUpdate,
    PoolSplitRequest,
    ProductPoolInfoOut,
    SharedPoolOut,
    SharedPoolPageOut,
)
from stockhub.services.pools import SharedPoolManager

router = APIRouter(prefix="/stock/pools", tags=["Shared Pools"])


@router.get("", response_model=SharedPoolPageOut)
def list_shared_pools(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=200),
    sku_keyword: str | None = Query(default=None, max_length=64),
    shared_only: bool = True,
    current_user: User = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    manager = SharedPoolManager(db, scope=scope_for(current_user))
    pools, total = manager.list_pools(
        page=page,
        page_size=page_size,
        sku_keyword=sku_keyword,
        shared_only=shared_only,
    )
    return SharedPoolPageOut(rows=[SharedPoolOut.model_validate(pool) for pool in pools], total=total)


@router.get("/by-product/{product_id}", response_model=ProductPoolInfoOut)
def product_pool_info(
    product_id: int,
    current_user: User = Depends(require_permission("stock:view")),
    db: Session = Depends(get_db),
):
    try:
        info = SharedPoolManager(db, scope=scope_for(current_user)).pool_info(product_id)
    except StockError as exc:
        raise_http_error(exc)
    return ProductPoolInfoOut.model_validate(info)


@router.post("/merge", response_model=SharedPoolOut)
def merge_pools(
    payload: PoolMergeRequest,
    current_user: User = Depends(require_permission("pool:manage")),
    db: Session = Depends(get_db),
):
    try:
        pool = SharedPoolManager(db, scope=scope_for(current_user)).merge(payload.codes)
    except StockError as exc:
        raise_http_error(exc)
    return SharedPoolOut.model_validate(pool)


@router.post("/split", response_model=SharedPoolOut)
def split_pool(
    payload: PoolSplitRequest,
    current_user: User = Depends(require_permission("pool:manage")),
    db: Session = Depends(get_db),
):
    try:
        pool = SharedPoolManager(db, scope=scope_for(current_user)).split(payload.code)
    except StockError as exc:
        raise_http_error(exc)
    return SharedPoolOut.model_validate(pool)


@router.post("/provision", response_model=SharedPoolOut)
def provision_pool(
    payload: PoolProvisionRequest,
    current_user: User = Depends(require_permission("pool:manage")),
    db: Session = Depends(get_db),
):
    try:
        pool = SharedPoolManager(db, scope=scope_for(current_user)).provision(payload.code, payload.quantity)
    except StockError as exc:
        raise_http_error(exc)
    return SharedPoolOut.model_validate(pool)


@router.patch("/{pool_id}/quantity", response_model=SharedPoolOut)
def set_pool_quantity(
    pool_id: int,
    payload: PoolQuantityUpdate,
    current_user: User = Depends(require_permission("pool:manage")),
    db: Session = Depends(get_db),
):
    try:
        pool = SharedPoolManager(db, scope=scope_for(current_user)).set_quantity(pool_id, payload.quantity)
    except StockError as exc:
        raise_http_error(exc)
    return SharedPoolOut.model_validate(pool)
