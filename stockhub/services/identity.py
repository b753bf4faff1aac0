from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockhub.core.errors import UnresolvedIdentity, ValidationError
from stockhub.models.stock import CodeMapping, Product
from stockhub.services.scope import AccessScope

PRIMARY_CODE_COLUMNS = ("code", "SKU")
EXTERNAL_CODE_COLUMNS = ("external_code", "京东SKU")


def clean_cell(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _first_cell(row: Mapping[str, Any], names: Sequence[str]) -> str | None:
    for name in names:
        value = clean_cell(row.get(name))
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class IdentityColumns:
    primary: str | None
    external: str | None


def detect_identity_columns(rows: Sequence[Mapping[str, Any]]) -> IdentityColumns:
    headers: set[str] = set()
    for row in rows:
        headers.update(row.keys())
    primary = next((name for name in PRIMARY_CODE_COLUMNS if name in headers), None)
    external = next((name for name in EXTERNAL_CODE_COLUMNS if name in headers), None)
    if primary is None and external is None:
        expected = ", ".join(f'"{name}"' for name in PRIMARY_CODE_COLUMNS + EXTERNAL_CODE_COLUMNS)
        raise ValidationError(f"Missing identity column: expected one of {expected}")
    return IdentityColumns(primary=primary, external=external)


class IdentityResolver:
    def __init__(self, db: Session, columns: IdentityColumns, scope: AccessScope) -> None:
        self.columns = columns
        self._product_ids: dict[str, int] = {
            code: product_id
            for code, product_id in db.execute(scope.apply(select(Product.code, Product.id))).all()
        }
        self._mapped_codes: dict[str, str] = {}
        if columns.external is not None:
            self._mapped_codes = {
                external_code: code
                for external_code, code in db.execute(select(CodeMapping.external_code, CodeMapping.code)).all()
            }

    def resolve_code(self, row: Mapping[str, Any]) -> str:
        code = _first_cell(row, PRIMARY_CODE_COLUMNS)
        if code is not None:
            return code
        external = _first_cell(row, EXTERNAL_CODE_COLUMNS) if self.columns.external else None
        if external is None:
            raise UnresolvedIdentity("product code is blank")
        mapped = self._mapped_codes.get(external)
        if mapped is None:
            raise UnresolvedIdentity(f'external code "{external}" has no code mapping')
        return mapped

    def resolve(self, row: Mapping[str, Any]) -> int:
        code = self.resolve_code(row)
        product_id = self._product_ids.get(code)
        if product_id is None:
            raise UnresolvedIdentity(f'product "{code}" not found')
        return product_id
