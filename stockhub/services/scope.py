from dataclasses import dataclass

from stockhub.models.stock import Product


@dataclass(frozen=True)
class AccessScope:
    # None means unrestricted; an empty set means nothing is visible.
    department_ids: frozenset[int] | None = None

    @property
    def is_unrestricted(self) -> bool:
        return self.department_ids is None

    def apply(self, query):
        if self.department_ids is None:
            return query
        return query.where(Product.department_id.in_(sorted(self.department_ids)))

    def allows(self, product: Product) -> bool:
        if self.department_ids is None:
            return True
        return product.department_id in self.department_ids


UNRESTRICTED = AccessScope()
