# Overview: Pytest coverage for the flask CLI command groups.

from tierflow.models import ManufacturerProduct, Organization, PurchaseRequest, User
from tierflow.services import purchase_request_service


def _invoke(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


def test_system_init_is_idempotent(app, db_session):
    first = _invoke(app, "system", "init", "--org", "Acme", "--org-code", "ACME")
    second = _invoke(app, "system", "init", "--org", "Acme", "--org-code", "ACME")

    assert first.exit_code == 0, first.output
    assert "DONE System initialized." in first.output
    assert "PASS User already exists: admin" in second.output

    manufacturer = db_session.query(Organization).filter_by(code="ACME").one()
    retailer = db_session.query(Organization).filter_by(code="ACME-CLIENT").one()
    assert retailer.parent_org_id == manufacturer.id
    assert db_session.query(User).count() == 2


def test_orgs_create_and_list(app, db_session, manufacturer_org):
    created = _invoke(app, "orgs", "create", "--name", "North Dealer", "--code", "NORTH",
                      "--parent-id", str(manufacturer_org.id))
    duplicate = _invoke(app, "orgs", "create", "--name", "Again", "--code", "NORTH")
    orphan = _invoke(app, "orgs", "create", "--name", "Lost", "--code", "LOST", "--parent-id", "99999")
    listing = _invoke(app, "orgs", "list")

    assert "PASS Created organization: North Dealer" in created.output
    assert "FAIL" in duplicate.output
    assert "FAIL Parent organization ID 99999 not found" in orphan.output
    assert "NORTH" in listing.output
    assert db_session.query(Organization).filter_by(code="NORTH").one().parent_org_id == manufacturer_org.id


def test_users_create(app, db_session, manufacturer_org):
    result = _invoke(app, "users", "create", "--org-id", str(manufacturer_org.id), "--username", "ops",
                     "--email", "ops@example.com", "--password", "Password123!", "--role", "admin")

    assert "PASS Created user: ops" in result.output
    assert db_session.query(User).filter_by(username="ops").one().role == "admin"


def test_catalog_add_product(app, db_session, manufacturer_org):
    result = _invoke(app, "catalog", "add-product", "--org-id", str(manufacturer_org.id), "--sku", "BOLT-1",
                     "--name", "Bolt", "--price", "2.50", "--stock", "40")
    bad_price = _invoke(app, "catalog", "add-product", "--org-id", str(manufacturer_org.id), "--sku", "BOLT-2",
                        "--name", "Bolt", "--price", "2.505")
    listing = _invoke(app, "catalog", "list", "--org-id", str(manufacturer_org.id))

    assert "PASS Created product: BOLT-1" in result.output
    assert "FAIL" in bad_price.output
    assert "BOLT-1" in listing.output

    product = db_session.query(ManufacturerProduct).filter_by(sku="BOLT-1").one()
    assert product.price_cents == 250
    assert product.stock == 40


def test_requests_approve_and_reject(app, db_session, manufacturer_org, product, client_user, admin):
    approved = purchase_request_service.submit(client_user.id, product.id, 4, 5000)
    rejected = purchase_request_service.submit(client_user.id, product.id, 1, 5000)

    listing = _invoke(app, "requests", "list", "--org-id", str(manufacturer_org.id), "--status", "pending")
    ok = _invoke(app, "requests", "approve", str(approved.id), "--actor-id", str(admin.id))
    again = _invoke(app, "requests", "approve", str(approved.id), "--actor-id", str(admin.id))
    no = _invoke(app, "requests", "reject", str(rejected.id), "--actor-id", str(admin.id), "--reason", "Late")

    assert listing.output.count("pending") == 2
    assert "manufacturer stock now 6" in ok.output
    assert "client stock now 4" in ok.output
    assert "FAIL" in again.output
    assert f"PASS Rejected request {rejected.id}" in no.output

    db_session.expire_all()
    assert db_session.get(PurchaseRequest, rejected.id).rejection_reason == "Late"


def test_requests_list_unknown_status(app, manufacturer_org):
    result = _invoke(app, "requests", "list", "--org-id", str(manufacturer_org.id), "--status", "shipped")
    assert "FAIL Unknown status: shipped" in result.output
