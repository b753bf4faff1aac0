import pytest
from sqlalchemy import select

from stockhub.core.security import create_access_token
from stockhub.models import UserRole, WarehouseStock


@pytest.fixture
def manager(make_user):
    return make_user("manager", role=UserRole.MANAGER, department_id=1)


@pytest.fixture
def viewer(make_user):
    return make_user("viewer", role=UserRole.VIEWER, department_id=1)


class TestAuthentication:
    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_token(self, client):
        assert client.get("/stock/warehouse").status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/stock/warehouse", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_alternate_token_header(self, client, manager):
        token = create_access_token(str(manager.id), manager.role.value)
        response = client.get("/stock/warehouse", headers={"x-access-token": token})
        assert response.status_code == 200

    def test_inactive_user(self, client, make_user, auth_headers):
        user = make_user("gone", is_active=False)
        assert client.get("/stock/warehouse", headers=auth_headers(user)).status_code == 403

    def test_viewer_cannot_import(self, client, viewer, auth_headers):
        response = client.post(
            "/stock/warehouse/import",
            json={"rows": [{"code": "SKU1"}]},
            headers=auth_headers(viewer),
        )
        assert response.status_code == 403


class TestStockRoutes:
    def test_import_then_report(self, client, db, manager, auth_headers, make_product):
        make_product("SKU1", cost="3.00")
        rows = [
            {"code": "SKU1", "warehouse": "North Hub", "stock": 100, "daily_sales": 0, "monthly_sales": 10},
            {"code": "SKU1", "warehouse": "全国", "stock": 900, "daily_sales": 0, "monthly_sales": 90},
            {"code": "SKU1", "warehouse": "South", "stock": "x", "daily_sales": 0, "monthly_sales": 0},
        ]
        response = client.post("/stock/warehouse/import", json={"rows": rows}, headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json() == {
            "success": 1,
            "fail": 1,
            "skipped": 1,
            "errors": ["row 4: stock quantity must be a number"],
        }

        response = client.get("/stock/warehouse", headers=auth_headers(manager))
        body = response.json()
        assert body["total"] == 1
        [row] = body["rows"]
        assert row["code"] == "SKU1"
        assert row["total_stock_quantity"] == 100
        assert row["records"][0]["warehouse_code"] == "No"
        assert row["records"][0]["sluggish_days"] == 1

    def test_empty_import_is_bad_request(self, client, manager, auth_headers):
        response = client.post("/stock/warehouse/import", json={"rows": []}, headers=auth_headers(manager))
        assert response.status_code == 400

    def test_code_mapping_import(self, client, manager, auth_headers):
        response = client.post(
            "/stock/code-mappings/import",
            json={"rows": [{"external_code": "JD-1", "code": "SKU1"}]},
            headers=auth_headers(manager),
        )
        assert response.status_code == 200
        assert response.json()["success"] == 1

    def test_unknown_sort_field_is_rejected(self, client, manager, auth_headers):
        response = client.get("/stock/warehouse?sort_field=code", headers=auth_headers(manager))
        assert response.status_code == 422

    def test_page_size_is_capped(self, client, manager, auth_headers):
        response = client.get("/stock/warehouse?page_size=100000", headers=auth_headers(manager))
        assert response.status_code == 422

    def test_report_is_scoped_to_department(self, client, manager, auth_headers, make_product, make_record):
        make_record(make_product("MINE", department_id=1), "No", stock=1)
        make_record(make_product("THEIRS", department_id=2), "No", stock=1)

        body = client.get("/stock/warehouse", headers=auth_headers(manager)).json()
        assert [row["code"] for row in body["rows"]] == ["MINE"]

    def test_admin_sees_everything(self, client, make_user, auth_headers, make_product, make_record):
        admin = make_user("admin", role=UserRole.ADMIN, department_id=None)
        make_record(make_product("MINE", department_id=1), "No", stock=1)
        make_record(make_product("THEIRS", department_id=2), "No", stock=1)

        body = client.get("/stock/warehouse", headers=auth_headers(admin)).json()
        assert body["total"] == 2

    def test_statistics(self, client, viewer, auth_headers, make_product, make_record):
        product = make_product("SKU1", cost="2.00")
        make_record(product, "No", stock=4, daily_sales=1, monthly_sales=9)

        body = client.get("/stock/warehouse/statistics", headers=auth_headers(viewer)).json()
        assert body["total_stock_quantity"] == 4
        assert body["total_daily_sales_quantity"] == 1
        assert body["total_monthly_sales_quantity"] == 9
        assert float(body["total_valuation"]) == 8.0

    def test_export_csv(self, client, viewer, auth_headers, make_product, make_record):
        product = make_product("SKU1")
        make_record(product, "No", stock=4)
        make_record(product, "So", stock=6)

        response = client.get("/stock/warehouse/export", headers=auth_headers(viewer))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("code,department")
        assert len(lines) == 3

    def test_reorder_threshold(self, client, db, manager, auth_headers, make_product, make_record):
        record = make_record(make_product("SKU1"), "No", stock=4)
        response = client.patch(
            f"/stock/warehouse/{record.id}/reorder-threshold",
            json={"reorder_threshold": 10},
            headers=auth_headers(manager),
        )
        assert response.status_code == 200
        assert response.json()["reorder_threshold"] == 10

        db.expire_all()
        stored = db.scalar(select(WarehouseStock).where(WarehouseStock.id == record.id))
        assert stored.reorder_threshold == 10

        body = client.get("/stock/warehouse?is_low_stock=true", headers=auth_headers(manager)).json()
        assert body["total"] == 1

    def test_reorder_threshold_outside_scope(self, client, manager, auth_headers, make_product, make_record):
        record = make_record(make_product("THEIRS", department_id=2), "No", stock=4)
        response = client.patch(
            f"/stock/warehouse/{record.id}/reorder-threshold",
            json={"reorder_threshold": 10},
            headers=auth_headers(manager),
        )
        assert response.status_code == 404

    def test_negative_threshold_is_rejected(self, client, manager, auth_headers, make_product, make_record):
        record = make_record(make_product("SKU1"), "No", stock=4)
        response = client.patch(
            f"/stock/warehouse/{record.id}/reorder-threshold",
            json={"reorder_threshold": -1},
            headers=auth_headers(manager),
        )
        assert response.status_code == 422


class TestPoolRoutes:
    def test_merge_and_split(self, client, manager, auth_headers, make_product, make_pool):
        make_product("A", pool=make_pool(5))
        make_product("B", pool=make_pool(7))

        response = client.post("/stock/pools/merge", json={"codes": ["A", "B"]}, headers=auth_headers(manager))
        assert response.status_code == 200
        merged = response.json()
        assert merged["quantity"] == 12
        assert merged["member_count"] == 2
        assert merged["is_shared"] is True

        response = client.post("/stock/pools/split", json={"code": "A"}, headers=auth_headers(manager))
        assert response.status_code == 200
        assert response.json()["quantity"] == 0

        listing = client.get("/stock/pools?shared_only=false", headers=auth_headers(manager)).json()
        assert listing["total"] == 2

    def test_merge_of_one_distinct_code_conflicts(self, client, manager, auth_headers, make_product):
        make_product("A")
        response = client.post("/stock/pools/merge", json={"codes": ["A", " A"]}, headers=auth_headers(manager))
        assert response.status_code == 409

    def test_split_of_independent_pool_conflicts(self, client, manager, auth_headers, make_product, make_pool):
        make_product("A", pool=make_pool(1))
        response = client.post("/stock/pools/split", json={"code": "A"}, headers=auth_headers(manager))
        assert response.status_code == 409

    def test_unknown_product_is_not_found(self, client, manager, auth_headers):
        response = client.post("/stock/pools/split", json={"code": "NOPE"}, headers=auth_headers(manager))
        assert response.status_code == 404

    def test_operator_cannot_manage_pools(self, client, make_user, auth_headers, make_product):
        operator = make_user("operator", role=UserRole.OPERATOR)
        make_product("A")
        response = client.post("/stock/pools/provision", json={"code": "A"}, headers=auth_headers(operator))
        assert response.status_code == 403

    def test_provision_quantity_and_info(self, client, manager, viewer, auth_headers, make_product):
        product = make_product("A")
        pool = client.post(
            "/stock/pools/provision",
            json={"code": "A", "quantity": 3},
            headers=auth_headers(manager),
        ).json()

        response = client.patch(
            f"/stock/pools/{pool['id']}/quantity",
            json={"quantity": 30},
            headers=auth_headers(manager),
        )
        assert response.json()["quantity"] == 30

        info = client.get(f"/stock/pools/by-product/{product.id}", headers=auth_headers(viewer)).json()
        assert info["pool_id"] == pool["id"]
        assert info["quantity"] == 30
        assert info["is_independent"] is True
