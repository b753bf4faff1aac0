import pytest

from stockhub.core.errors import UnresolvedIdentity, ValidationError
from stockhub.models import CodeMapping
from stockhub.services.identity import IdentityColumns, IdentityResolver, clean_cell, detect_identity_columns
from stockhub.services.scope import UNRESTRICTED, AccessScope


class TestCleanCell:
    def test_strips_and_blanks_to_none(self):
        assert clean_cell("  SKU1 ") == "SKU1"
        assert clean_cell("   ") is None
        assert clean_cell(None) is None

    def test_integral_floats_lose_decimal_point(self):
        # spreadsheet decoders hand numeric codes over as floats
        assert clean_cell(100234.0) == "100234"
        assert clean_cell(1.5) == "1.5"


class TestDetectIdentityColumns:
    def test_primary_column(self):
        columns = detect_identity_columns([{"code": "A", "stock": 1}])
        assert columns == IdentityColumns(primary="code", external=None)

    def test_synonym_headers(self):
        columns = detect_identity_columns([{"SKU": "A", "京东SKU": "J1"}])
        assert columns == IdentityColumns(primary="SKU", external="京东SKU")

    def test_header_present_only_in_later_row(self):
        columns = detect_identity_columns([{"stock": 1}, {"external_code": "X"}])
        assert columns.external == "external_code"

    def test_missing_identity_column_rejects_batch(self):
        with pytest.raises(ValidationError) as exc_info:
            detect_identity_columns([{"warehouse": "North Hub", "stock": 3}])
        assert "Missing identity column" in exc_info.value.message


class TestIdentityResolver:
    def test_primary_code_resolves_directly(self, db, make_product):
        product = make_product("SKU1")
        resolver = IdentityResolver(db, IdentityColumns("code", None), UNRESTRICTED)
        assert resolver.resolve({"code": " SKU1 "}) == product.id

    def test_external_code_goes_through_mapping(self, db, make_product):
        product = make_product("SKU1")
        db.add(CodeMapping(external_code="JD-9", code="SKU1"))
        db.commit()

        resolver = IdentityResolver(db, IdentityColumns("code", "external_code"), UNRESTRICTED)
        assert resolver.resolve({"code": "", "external_code": "JD-9"}) == product.id

    def test_primary_wins_over_external(self, db, make_product):
        first = make_product("SKU1")
        make_product("SKU2")
        db.add(CodeMapping(external_code="JD-9", code="SKU2"))
        db.commit()

        resolver = IdentityResolver(db, IdentityColumns("code", "external_code"), UNRESTRICTED)
        assert resolver.resolve({"code": "SKU1", "external_code": "JD-9"}) == first.id

    def test_unmapped_external_code(self, db, make_product):
        make_product("SKU1")
        resolver = IdentityResolver(db, IdentityColumns(None, "external_code"), UNRESTRICTED)
        with pytest.raises(UnresolvedIdentity):
            resolver.resolve({"external_code": "JD-404"})

    def test_blank_identity(self, db):
        resolver = IdentityResolver(db, IdentityColumns("code", "external_code"), UNRESTRICTED)
        with pytest.raises(UnresolvedIdentity) as exc_info:
            resolver.resolve({"code": " ", "external_code": None})
        assert exc_info.value.message == "product code is blank"

    def test_unknown_product(self, db):
        resolver = IdentityResolver(db, IdentityColumns("code", None), UNRESTRICTED)
        with pytest.raises(UnresolvedIdentity) as exc_info:
            resolver.resolve({"code": "NOPE"})
        assert exc_info.value.message == 'product "NOPE" not found'

    def test_product_outside_scope_is_unresolved(self, db, make_product):
        make_product("SKU1", department_id=2)
        resolver = IdentityResolver(db, IdentityColumns("code", None), AccessScope(frozenset({1})))
        with pytest.raises(UnresolvedIdentity):
            resolver.resolve({"code": "SKU1"})

    def test_rows_fall_back_across_primary_synonyms(self, db, make_product):
        first = make_product("SKU1")
        second = make_product("SKU2")
        columns = detect_identity_columns([{"code": "SKU1", "SKU": ""}, {"code": "", "SKU": "SKU2"}])

        resolver = IdentityResolver(db, columns, UNRESTRICTED)
        assert resolver.resolve({"code": "SKU1", "SKU": ""}) == first.id
        assert resolver.resolve({"code": " ", "SKU": "SKU2"}) == second.id
