import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockhub.core.config import settings
from stockhub.core.errors import InvariantViolation, NotFoundOrForbidden, ValidationError
from stockhub.core.locks import KeyedLockArena, pool_key, pool_locks, product_key
from stockhub.models.stock import Product, SharedPool
from stockhub.services.scope import UNRESTRICTED, AccessScope

logger = logging.getLogger(__name__)

PRODUCT_NOT_FOUND = "Product not found or not accessible"
POOL_NOT_FOUND = "Pool not found or not accessible"


@dataclass
class PoolMember:
    product_id: int
    code: str
    department_name: str
    shop_name: str | None


@dataclass
class PoolView:
    id: int
    quantity: int
    members: list[PoolMember]
    member_count: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_shared(self) -> bool:
        return self.member_count >= 2


@dataclass
class ProductPoolInfo:
    product_id: int
    code: str
    department_name: str
    pool_id: int | None
    quantity: int
    is_independent: bool
    shared_with: list[PoolMember] = field(default_factory=list)


def _member(product: Product) -> PoolMember:
    return PoolMember(
        product_id=product.id,
        code=product.code,
        department_name=product.department_name,
        shop_name=product.shop_name,
    )


def _normalize_codes(codes: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for code in codes:
        cleaned = (code or "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class SharedPoolManager:
    """Keeps every provisioned product in exactly one pool.

    Membership changes lock the affected products first and the affected pools
    second, each phase in sorted key order, so overlapping operations serialize
    instead of observing each other's half-written state. The in-process arena
    orders threads; the same rows are also loaded ``FOR UPDATE`` so separate
    worker processes serialize in the database.

    Only a shared pool can be split: splitting a product that has no pool or
    already sits alone in its pool is an ``InvariantViolation``, so a split
    never empties a pool. Pools are deleted only when a merge absorbs them.

    Views list only the members inside the caller's scope, while
    ``member_count`` reports the pool's real size.
    """

    def __init__(
        self,
        db: Session,
        scope: AccessScope = UNRESTRICTED,
        locks: KeyedLockArena = pool_locks,
    ) -> None:
        self.db = db
        self.scope = scope
        self.locks = locks

    def _products_by_code(self, codes: list[str]) -> dict[str, Product]:
        products = self.db.scalars(self.scope.apply(select(Product).where(Product.code.in_(codes)))).all()
        return {product.code: product for product in products}

    def _product_by_code(self, code: str) -> Product:
        cleaned = (code or "").strip()
        product = self._products_by_code([cleaned]).get(cleaned) if cleaned else None
        if product is None:
            raise NotFoundOrForbidden(PRODUCT_NOT_FOUND)
        return product

    def _reload(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id, populate_existing=True, with_for_update=True)
        if product is None:
            raise NotFoundOrForbidden(PRODUCT_NOT_FOUND)
        return product

    def _members_of(self, pool_id: int) -> list[Product]:
        return list(
            self.db.scalars(select(Product).where(Product.pool_id == pool_id).order_by(Product.code.asc())).all()
        )

    def _visible_members_of(self, pool_id: int) -> list[Product]:
        query = select(Product).where(Product.pool_id == pool_id).order_by(Product.code.asc())
        return list(self.db.scalars(self.scope.apply(query)).all())

    def _member_count(self, pool_id: int) -> int:
        return self.db.scalar(select(func.count(Product.id)).where(Product.pool_id == pool_id)) or 0

    def _view(self, pool: SharedPool) -> PoolView:
        return PoolView(
            id=pool.id,
            quantity=pool.quantity,
            members=[_member(product) for product in self._visible_members_of(pool.id)],
            member_count=self._member_count(pool.id),
            created_at=pool.created_at,
            updated_at=pool.updated_at,
        )

    def merge(self, codes: Iterable[str]) -> PoolView:
        wanted = _normalize_codes(codes)
        if len(wanted) < 2:
            raise InvariantViolation("At least two distinct product codes are required to share a pool")

        found = self._products_by_code(wanted)
        missing = [code for code in wanted if code not in found]
        if missing:
            raise NotFoundOrForbidden(f"{PRODUCT_NOT_FOUND}: {', '.join(missing)}")

        product_ids = [found[code].id for code in wanted]
        with self.locks.hold(*(product_key(pid) for pid in product_ids)):
            products = [self._reload(pid) for pid in sorted(product_ids)]
            source_pool_ids = {p.pool_id for p in products if p.pool_id is not None}
            with self.locks.hold(*(pool_key(pool_id) for pool_id in source_pool_ids)):
                merged_ids = set(product_ids)
                absorbed_quantity = 0
                absorbed_pools: list[SharedPool] = []
                for pool_id in sorted(source_pool_ids):
                    pool = self.db.get(SharedPool, pool_id, populate_existing=True, with_for_update=True)
                    if pool is None:
                        continue
                    remaining = [m for m in self._members_of(pool_id) if m.id not in merged_ids]
                    # a pool that keeps other members keeps its physical count
                    if not remaining:
                        absorbed_quantity += pool.quantity
                        absorbed_pools.append(pool)

                new_pool = SharedPool(quantity=absorbed_quantity)
                self.db.add(new_pool)
                self.db.flush()
                for product in products:
                    product.pool_id = new_pool.id
                self.db.flush()
                for pool in absorbed_pools:
                    self.db.delete(pool)
                self.db.commit()

        logger.info(
            "Merged products %s into pool %s with quantity %s (absorbed %s pools)",
            ", ".join(wanted),
            new_pool.id,
            new_pool.quantity,
            len(absorbed_pools),
        )
        self.db.refresh(new_pool)
        return self._view(new_pool)

    def split(self, code: str) -> PoolView:
        product = self._product_by_code(code)
        with self.locks.hold(product_key(product.id)):
            product = self._reload(product.id)
            if product.pool_id is None:
                raise InvariantViolation(f'Product "{product.code}" is not assigned to any pool')
            with self.locks.hold(pool_key(product.pool_id)):
                source_pool_id = product.pool_id
                self.db.get(SharedPool, source_pool_id, populate_existing=True, with_for_update=True)
                members = self._members_of(source_pool_id)
                if len(members) < 2:
                    raise InvariantViolation(f'Product "{product.code}" already has an independent pool')

                new_pool = SharedPool(quantity=settings.split_pool_initial_quantity)
                self.db.add(new_pool)
                self.db.flush()
                product.pool_id = new_pool.id
                self.db.commit()

        logger.info(
            "Split product %s out of pool %s into new pool %s",
            product.code,
            source_pool_id,
            new_pool.id,
        )
        self.db.refresh(new_pool)
        return self._view(new_pool)

    def provision(self, code: str, quantity: int = 0) -> PoolView:
        if quantity < 0:
            raise ValidationError("Pool quantity must not be negative")
        product = self._product_by_code(code)
        with self.locks.hold(product_key(product.id)):
            product = self._reload(product.id)
            if product.pool_id is not None:
                raise InvariantViolation(f'Product "{product.code}" already belongs to pool {product.pool_id}')
            pool = SharedPool(quantity=quantity)
            self.db.add(pool)
            self.db.flush()
            product.pool_id = pool.id
            self.db.commit()

        logger.info("Provisioned pool %s for product %s", pool.id, product.code)
        self.db.refresh(pool)
        return self._view(pool)

    def _visible_pool(self, pool_id: int) -> SharedPool:
        pool = self.db.get(SharedPool, pool_id, populate_existing=True, with_for_update=True)
        if pool is None:
            raise NotFoundOrForbidden(POOL_NOT_FOUND)
        if not self.scope.is_unrestricted:
            visible = self.db.scalar(
                self.scope.apply(select(func.count(Product.id)).where(Product.pool_id == pool_id))
            )
            if not visible:
                raise NotFoundOrForbidden(POOL_NOT_FOUND)
        return pool

    def set_quantity(self, pool_id: int, quantity: int) -> PoolView:
        if quantity < 0:
            raise ValidationError("Pool quantity must not be negative")
        with self.locks.hold(pool_key(pool_id)):
            pool = self._visible_pool(pool_id)
            pool.quantity = quantity
            self.db.commit()
        self.db.refresh(pool)
        return self._view(pool)

    def list_pools(
        self,
        *,
        page: int = 1,
        page_size: int = 10,
        sku_keyword: str | None = None,
        shared_only: bool = True,
    ) -> tuple[list[PoolView], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be at least 1")

        member_query = select(Product.pool_id).where(Product.pool_id.is_not(None))
        if sku_keyword:
            member_query = member_query.where(Product.code.contains(sku_keyword.strip(), autoescape=True))
        member_query = self.scope.apply(member_query)

        counts = (
            select(Product.pool_id.label("pool_id"), func.count(Product.id).label("member_count"))
            .where(Product.pool_id.is_not(None))
            .group_by(Product.pool_id)
            .subquery()
        )
        query = (
            select(SharedPool)
            .join(counts, counts.c.pool_id == SharedPool.id)
            .where(SharedPool.id.in_(member_query))
        )
        if shared_only:
            query = query.where(counts.c.member_count >= 2)

        total = self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        pools = self.db.scalars(
            query.order_by(SharedPool.created_at.desc(), SharedPool.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return [self._view(pool) for pool in pools], int(total)

    def pool_info(self, product_id: int) -> ProductPoolInfo:
        product = self.db.scalar(self.scope.apply(select(Product).where(Product.id == product_id)))
        if product is None:
            raise NotFoundOrForbidden(PRODUCT_NOT_FOUND)
        if product.pool_id is None:
            return ProductPoolInfo(
                product_id=product.id,
                code=product.code,
                department_name=product.department_name,
                pool_id=None,
                quantity=0,
                is_independent=True,
            )
        pool = self.db.get(SharedPool, product.pool_id)
        others = [_member(m) for m in self._visible_members_of(product.pool_id) if m.id != product.id]
        return ProductPoolInfo(
            product_id=product.id,
            code=product.code,
            department_name=product.department_name,
            pool_id=product.pool_id,
            quantity=pool.quantity if pool is not None else 0,
            is_independent=self._member_count(product.pool_id) < 2,
            shared_with=others,
        )
