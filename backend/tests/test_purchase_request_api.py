# Overview: Pytest coverage for the purchase request HTTP API.

"""
Purchase Request API Tests

Exercises the JSON surface: status codes, error bodies, role checks and
tenant scoping (foreign records answer 404, never 403).
"""

import pytest

from tierflow.errors import TransactionConflictError
from tierflow.models import Order, PurchaseRequest
from tierflow.services import purchase_request_service


def _create(client, headers, product_id, quantity=4, price="50.00", **extra):
    body = {"productId": product_id, "quantity": quantity, "price": price}
    body.update(extra)
    return client.post("/api/purchase-requests", json=body, headers=headers)


@pytest.fixture
def client_headers(auth_headers, client_user):
    return auth_headers(client_user)


@pytest.fixture
def admin_headers(auth_headers, admin):
    return auth_headers(admin)


@pytest.fixture
def pending_request(db_session, product, client_user):
    return purchase_request_service.submit(client_user.id, product.id, 4, 5000)


class TestCreate:
    def test_client_submits_for_self(self, client, client_headers, product, client_user):
        resp = _create(client, client_headers, product.id)

        assert resp.status_code == 201
        body = resp.get_json()["request"]
        assert body["status"] == "pending"
        assert body["client_id"] == client_user.id
        assert body["unit_price_cents"] == 5000
        assert body["total_cents"] == 20000

    def test_accepts_snake_case_and_cents(self, client, client_headers, product):
        resp = client.post(
            "/api/purchase-requests",
            json={"product_id": product.id, "quantity": 2, "unit_price_cents": 1234},
            headers=client_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["request"]["unit_price_cents"] == 1234

    def test_admin_submits_on_behalf_of_client(self, client, admin_headers, product, client_user):
        resp = _create(client, admin_headers, product.id, clientId=client_user.id)

        assert resp.status_code == 201
        assert resp.get_json()["request"]["client_id"] == client_user.id

    def test_admin_cannot_submit_for_foreign_client(self, client, auth_headers, other_admin, product, client_user):
        resp = _create(client, auth_headers(other_admin), product.id, clientId=client_user.id)
        assert resp.status_code == 404

    def test_client_cannot_submit_for_someone_else(self, client, client_headers, product, second_client):
        resp = _create(client, client_headers, product.id, clientId=second_client.id)
        assert resp.status_code == 404

    @pytest.mark.parametrize("body, field", [
        ({"quantity": "abc"}, "quantity"),
        ({"quantity": 0}, "quantity"),
        ({"price": "12.345"}, "price"),
        ({"price": "-5"}, "price"),
        ({"productId": "x"}, "productId"),
    ])
    def test_validation_errors_name_the_field(self, client, client_headers, product, body, field):
        payload = {"productId": product.id, "quantity": 1, "price": "10"}
        payload.update(body)

        resp = client.post("/api/purchase-requests", json=payload, headers=client_headers)

        assert resp.status_code == 400
        assert resp.get_json()["field"] == field

    def test_missing_price(self, client, client_headers, product):
        resp = client.post(
            "/api/purchase-requests",
            json={"productId": product.id, "quantity": 1},
            headers=client_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "price"

    def test_unknown_product(self, client, client_headers):
        resp = _create(client, client_headers, 99999)
        assert resp.status_code == 404

    def test_requires_authentication(self, client, product):
        resp = _create(client, {}, product.id)
        assert resp.status_code == 401

    def test_dealer_forbidden(self, client, auth_headers, dealer, product):
        resp = _create(client, auth_headers(dealer), product.id)
        assert resp.status_code == 403


class TestApprove:
    def test_approve_returns_transfer(self, client, admin_headers, pending_request):
        resp = client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert set(body) == {"request", "order", "product", "client_product"}
        assert body["request"]["status"] == "approved"
        assert body["product"]["stock"] == 6
        assert body["client_product"]["current_stock"] == 4
        assert body["client_product"]["is_new"] is True
        assert body["order"]["total_cents"] == 20000
        assert len(body["order"]["items"]) == 1

    def test_price_in_currency_units(self, client, client_headers, admin_headers, product):
        created = _create(client, client_headers, product.id, quantity=4, price=50).get_json()["request"]

        resp = client.post(f"/api/purchase-requests/{created['id']}/approve", headers=admin_headers)

        assert resp.get_json()["order"]["total_cents"] == 20000

    def test_approve_twice_conflicts(self, client, admin_headers, pending_request):
        client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)
        resp = client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["status"] == "approved"

    def test_insufficient_stock(self, client, admin_headers, product, client_user):
        pr = purchase_request_service.submit(client_user.id, product.id, 11, 5000)

        resp = client.post(f"/api/purchase-requests/{pr.id}/approve", headers=admin_headers)

        assert resp.status_code == 422
        body = resp.get_json()
        assert body["available"] == 10
        assert body["requested"] == 11

    def test_unknown_request(self, client, admin_headers):
        resp = client.post("/api/purchase-requests/99999/approve", headers=admin_headers)
        assert resp.status_code == 404

    def test_foreign_admin_gets_not_found(self, client, auth_headers, other_admin, pending_request, db_session):
        resp = client.post(
            f"/api/purchase-requests/{pending_request.id}/approve",
            headers=auth_headers(other_admin),
        )

        assert resp.status_code == 404
        db_session.expire_all()
        assert db_session.get(PurchaseRequest, pending_request.id).status == "pending"

    def test_superadmin_can_approve_any(self, client, auth_headers, superadmin, pending_request):
        resp = client.post(
            f"/api/purchase-requests/{pending_request.id}/approve",
            headers=auth_headers(superadmin),
        )
        assert resp.status_code == 200

    def test_client_cannot_approve(self, client, client_headers, pending_request):
        resp = client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=client_headers)
        assert resp.status_code == 403

    def test_storage_conflict_is_retryable(self, client, admin_headers, pending_request, monkeypatch):
        def conflicted(*args, **kwargs):
            raise TransactionConflictError("The operation conflicted with concurrent activity; please retry")

        monkeypatch.setattr(purchase_request_service, "approve", conflicted)

        resp = client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)

        assert resp.status_code == 503
        assert resp.get_json()["retryable"] is True

    def test_unexpected_error_is_500(self, client, admin_headers, pending_request, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(purchase_request_service, "approve", broken)

        resp = client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}


class TestReject:
    def test_reject(self, client, admin_headers, pending_request, db_session):
        resp = client.post(
            f"/api/purchase-requests/{pending_request.id}/reject",
            json={"reason": "Discontinued"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        body = resp.get_json()["request"]
        assert body["status"] == "rejected"
        assert body["rejection_reason"] == "Discontinued"
        assert db_session.query(Order).count() == 0

    def test_reject_requires_reason(self, client, admin_headers, pending_request):
        resp = client.post(
            f"/api/purchase-requests/{pending_request.id}/reject",
            json={"reason": "   "},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "reason"

    def test_reject_without_body(self, client, admin_headers, pending_request):
        resp = client.post(f"/api/purchase-requests/{pending_request.id}/reject", headers=admin_headers)
        assert resp.status_code == 400

    def test_reject_terminal(self, client, admin_headers, pending_request):
        url = f"/api/purchase-requests/{pending_request.id}/reject"
        client.post(url, json={"reason": "No"}, headers=admin_headers)

        resp = client.post(url, json={"reason": "Still no"}, headers=admin_headers)

        assert resp.status_code == 409


class TestList:
    def test_admin_list_defaults_to_own_clients(
        self, client, admin_headers, pending_request, other_client, other_product
    ):
        purchase_request_service.submit(other_client.id, other_product.id, 1, 100)

        resp = client.get("/api/purchase-requests", headers=admin_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["count"] == 1
        assert body["requests"][0]["id"] == pending_request.id

    @pytest.mark.parametrize("param", ["abc", "", "null", "1.0"])
    def test_malformed_organization_id_falls_back(self, client, admin_headers, pending_request, param):
        resp = client.get(f"/api/purchase-requests?organizationId={param}", headers=admin_headers)

        assert resp.status_code == 200
        assert [r["id"] for r in resp.get_json()["requests"]] == [pending_request.id]

    def test_explicit_organization_id(self, client, admin_headers, pending_request, manufacturer_org):
        resp = client.get(
            f"/api/purchase-requests?organizationId={manufacturer_org.id}",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_foreign_organization_id_is_not_found(self, client, admin_headers, other_org):
        resp = client.get(f"/api/purchase-requests?organizationId={other_org.id}", headers=admin_headers)
        assert resp.status_code == 404

    def test_unknown_status(self, client, admin_headers):
        resp = client.get("/api/purchase-requests?status=shipped", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "status"

    def test_client_sees_only_own(self, client, auth_headers, pending_request, second_client, product):
        purchase_request_service.submit(second_client.id, product.id, 1, 100)

        resp = client.get("/api/purchase-requests", headers=auth_headers(second_client))

        requests = resp.get_json()["requests"]
        assert len(requests) == 1
        assert requests[0]["client_id"] == second_client.id

    def test_get_single_request(self, client, client_headers, admin_headers, pending_request):
        client.post(f"/api/purchase-requests/{pending_request.id}/approve", headers=admin_headers)

        resp = client.get(f"/api/purchase-requests/{pending_request.id}", headers=client_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["request"]["status"] == "approved"
        assert body["order"]["purchase_request_id"] == pending_request.id

    def test_get_single_request_of_other_client(self, client, auth_headers, second_client, pending_request):
        resp = client.get(f"/api/purchase-requests/{pending_request.id}", headers=auth_headers(second_client))
        assert resp.status_code == 404

    def test_requests_for_client(self, client, admin_headers, pending_request, client_user):
        resp = client.get(f"/api/purchase-requests/client/{client_user.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.get_json()["count"] == 1

    def test_requests_for_foreign_client(self, client, auth_headers, other_admin, client_user):
        resp = client.get(f"/api/purchase-requests/client/{client_user.id}", headers=auth_headers(other_admin))
        assert resp.status_code == 404

    def test_client_cannot_list_other_client(self, client, client_headers, second_client):
        resp = client.get(f"/api/purchase-requests/client/{second_client.id}", headers=client_headers)
        assert resp.status_code == 404

    def test_created_after_filter(self, client, admin_headers, pending_request):
        past = client.get("/api/purchase-requests?createdAfter=2000-01-01T00:00:00Z", headers=admin_headers)
        future = client.get("/api/purchase-requests?createdAfter=2999-01-01T00:00:00Z", headers=admin_headers)

        assert past.get_json()["count"] == 1
        assert future.get_json()["count"] == 0

    def test_created_after_must_be_a_datetime(self, client, admin_headers):
        resp = client.get("/api/purchase-requests?createdAfter=yesterday", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["field"] == "createdAfter"
