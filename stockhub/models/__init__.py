from stockhub.models.stock import CodeMapping, Product, SharedPool, WarehouseStock
from stockhub.models.user import User, UserRole

__all__ = [
    "CodeMapping",
    "Product",
    "SharedPool",
    "User",
    "UserRole",
    "WarehouseStock",
]
