"""
API tests for the pricing record, ingest and auth routes.

Run: pytest tests/test_api_routes.py -v
"""

import pytest

from tests.conftest import PRICING_TABLE, USERS_TABLE
from tests.factories import PricingCsvFactory


ADMIN = {"X-User-Id": "admin-uid", "X-User-Email": "admin@example.com"}
MANAGER = {"X-User-Id": "manager-uid"}
VIEWER = {"X-User-Id": "viewer-uid"}

USERS = [
    {"id": "admin-uid", "email": "admin@example.com", "role": "admin"},
    {"id": "manager-uid", "email": "pricing@example.com", "role": "pricing_manager"},
    {"id": "broken-uid", "email": "broken@example.com", "role": "superuser"},
]


@pytest.fixture
def client(test_client_with_mock_db, mock_db, sample_records):
    mock_db.set_table_data(USERS_TABLE, USERS)
    mock_db.set_table_data(PRICING_TABLE, sample_records)
    return test_client_with_mock_db


class TestIdentity:

    def test_missing_user_header_is_401(self, client):
        response = client.get("/api/pricing-records")
        assert response.status_code == 401

    def test_api_key_required_when_configured(self, client, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, "api_key", "gateway-secret")

        assert client.get("/api/auth/me", headers=ADMIN).status_code == 401
        response = client.get("/api/auth/me", headers={**ADMIN, "X-API-Key": "gateway-secret"})
        assert response.status_code == 200

    def test_me_returns_permissions(self, client):
        response = client.get("/api/auth/me", headers=MANAGER)

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["role"] == "pricing_manager"
        assert body["permissions"]["upload_csv"] is True
        assert body["permissions"]["manage_users"] is False

    def test_unknown_user_is_viewer(self, client):
        body = client.get("/api/auth/me", headers={"X-User-Id": "stranger"}).json()
        assert body["user"]["role"] == "viewer"

    def test_unknown_role_has_no_permissions(self, client):
        body = client.get("/api/auth/me", headers={"X-User-Id": "broken-uid"}).json()
        assert not any(body["permissions"].values())


class TestQueryRoutes:

    def test_list_recent(self, client):
        response = client.get("/api/pricing-records?page_size=2", headers=VIEWER)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert [r["id"] for r in body["data"]] == ["rec-3", "rec-2"]

    def test_search_exact(self, client):
        body = client.get("/api/pricing-records/search?q=IND-0456", headers=VIEWER).json()

        assert body["strategy"] == "exact"
        assert [r["id"] for r in body["data"]] == ["rec-3"]

    def test_search_product_name(self, client):
        body = client.get("/api/pricing-records/search/product-name?q=macbook", headers=VIEWER).json()
        assert [r["id"] for r in body["data"]] == ["rec-2"]

    def test_filter_country(self, client):
        body = client.get("/api/pricing-records/filter?country=IND", headers=VIEWER).json()
        assert [r["store_id"] for r in body["data"]] == ["IND-0456", "IND-0457"]

    def test_filter_rejects_bad_country(self, client):
        response = client.get("/api/pricing-records/filter?country=I1", headers=VIEWER)
        assert response.status_code == 422

    def test_denied_is_403(self, client):
        response = client.get("/api/pricing-records", headers={"X-User-Id": "broken-uid"})
        assert response.status_code == 403
        assert response.json()["status"] == "denied"

    def test_store_failure_is_503(self, client, mock_db):
        mock_db.fail_on.add("select")

        response = client.get("/api/pricing-records", headers=VIEWER)

        assert response.status_code == 503
        assert response.json()["data"] == []


class TestRecordRoutes:

    def test_get_record(self, client):
        response = client.get("/api/pricing-records/rec-1", headers=VIEWER)

        assert response.status_code == 200
        assert response.json()["record"]["sku"] == "ABC123"

    def test_get_missing_record(self, client):
        response = client.get("/api/pricing-records/nope", headers=VIEWER)
        assert response.status_code == 404

    def test_patch_record(self, client):
        response = client.patch(
            "/api/pricing-records/rec-1",
            json={"price": "949.99"},
            headers=MANAGER
        )

        assert response.status_code == 200
        assert response.json()["record"]["price"] == "949.99"

    def test_patch_invalid_is_422_with_field_errors(self, client):
        response = client.patch(
            "/api/pricing-records/rec-1",
            json={"price": "-1"},
            headers=MANAGER
        )

        assert response.status_code == 422
        assert response.json()["field_errors"] == {"price": "Price must be greater than 0"}

    def test_viewer_cannot_patch(self, client):
        response = client.patch("/api/pricing-records/rec-1", json={"price": "1"}, headers=VIEWER)
        assert response.status_code == 403

    def test_create_record(self, client):
        response = client.post(
            "/api/pricing-records",
            json={
                "store_id": "USA-0790",
                "sku": "XYZ987",
                "product_name": "iPad Air",
                "price": "599.00",
            },
            headers=MANAGER
        )

        assert response.status_code == 201
        assert response.json()["record"]["store_id"] == "USA-0790"


class TestIngestRoutes:

    def test_upload_csv(self, client, mock_db):
        content = PricingCsvFactory.build([
            ("IND-0456", "ABC123456", "iPhone 15 Pro", "999.99", "2026-02-06"),
            ("bad", "BAD", "", "-5", "notadate"),
        ])

        response = client.post(
            "/api/ingest/csv?mode=append",
            files={"file": ("prices.csv", content, "text/csv")},
            headers=MANAGER
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] == 1
        assert body["invalid"] == 1
        assert body["uploaded"] == 1
        assert body["invalid_rows"][0]["row_index"] == 3
        assert len(mock_db.rows(PRICING_TABLE)) == 4

    def test_upload_with_trailing_commas(self, client, mock_db):
        content = (
            b"Store ID,SKU,Product Name,Price,Date\n"
            b"IND-0456,ABC123456,iPhone 15 Pro,999.99,2026-02-06,\n"
        )

        response = client.post(
            "/api/ingest/csv",
            files={"file": ("prices.csv", content, "text/csv")},
            headers=MANAGER
        )

        assert response.status_code == 200
        assert response.json()["uploaded"] == 1
        assert len(mock_db.rows(PRICING_TABLE)) == 4

    def test_upload_rejects_non_csv(self, client):
        response = client.post(
            "/api/ingest/csv",
            files={"file": ("prices.xlsx", b"x", "application/octet-stream")},
            headers=MANAGER
        )
        assert response.status_code == 400

    def test_upload_unreadable_csv_is_422(self, client):
        response = client.post(
            "/api/ingest/csv",
            files={"file": ("prices.csv", b"SKU,Price\nABC123,1\n", "text/csv")},
            headers=MANAGER
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "CSV_PARSE_ERROR"

    def test_viewer_cannot_upload(self, client):
        response = client.post(
            "/api/ingest/csv",
            files={"file": ("prices.csv", PricingCsvFactory.build([]), "text/csv")},
            headers=VIEWER
        )
        assert response.status_code == 403

    def test_download_template(self, client):
        response = client.get("/api/ingest/template", headers=VIEWER)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "pricing-feed-template.csv" in response.headers["content-disposition"]
        assert response.text.splitlines()[0] == "Store ID,SKU,Product Name,Price,Date"


class TestUserRoutes:

    def test_admin_creates_user(self, client):
        response = client.post(
            "/api/auth/users",
            json={"uid": "new-uid", "email": "new@example.com", "display_name": "New User"},
            headers=ADMIN
        )

        assert response.status_code == 201
        assert response.json()["role"] == "viewer"

    def test_manager_cannot_create_user(self, client):
        response = client.post(
            "/api/auth/users",
            json={"uid": "new-uid", "email": "new@example.com", "display_name": "New User"},
            headers=MANAGER
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    def test_duplicate_user_is_409(self, client):
        response = client.post(
            "/api/auth/users",
            json={"uid": "manager-uid", "email": "m@example.com", "display_name": "Manager"},
            headers=ADMIN
        )
        assert response.status_code == 409


def test_health(client):
    body = client.get("/health").json()
    assert body["database"]["status"] == "healthy"
    assert body["database"]["pricing_records_count"] == 3
