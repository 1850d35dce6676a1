# Overview: Threaded approval races against a shared SQLite file.

"""
Concurrency tests for the approval engine.

Every worker pushes its own app context, so each thread gets its own
session and connection. Run alone with:
    python -m pytest tests/test_concurrency.py
"""
import os
import tempfile
import threading
import unittest

from tierflow import create_app
from tierflow.errors import InsufficientStockError, InvalidStateError
from tierflow.extensions import db
from tierflow.models import ClientProduct, ManufacturerProduct, Order, Organization, PurchaseRequest, User
from tierflow.models.auth import ROLE_ADMIN, ROLE_CLIENT
from tierflow.services import purchase_request_service, session_service


class ApprovalConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "TRANSACTION_RETRY_ATTEMPTS": 25,
            "TRANSACTION_RETRY_BACKOFF": 0.01,
            "TRANSACTION_TIMEOUT_SECONDS": 30.0,
            "SQLITE_BUSY_TIMEOUT": 30.0,
            "LOG_LEVEL": "ERROR",
        })

        with self.app.app_context():
            db.create_all()

            manufacturer = Organization(name="Concurrency Manufacturing", code="CONC")
            db.session.add(manufacturer)
            db.session.commit()
            retailer = Organization(name="Concurrency Retail", code="CONC-R", parent_org_id=manufacturer.id)
            db.session.add(retailer)
            db.session.commit()
            self.org_id = manufacturer.id

            admin = User(
                org_id=manufacturer.id,
                username="concurrent_admin",
                email="concurrent_admin@example.com",
                password_hash="dummy",
                role=ROLE_ADMIN,
            )
            client = User(
                org_id=retailer.id,
                username="concurrent_client",
                email="concurrent_client@example.com",
                password_hash="dummy",
                role=ROLE_CLIENT,
            )
            db.session.add_all([admin, client])
            db.session.commit()
            self.admin_id = admin.id
            self.client_id = client.id

            product = ManufacturerProduct(
                org_id=manufacturer.id,
                sku="CONC-1",
                name="Concurrent Widget",
                price_cents=1000,
                stock=10,
            )
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

            _, token = session_service.create_session(self.admin_id)
            self.admin_headers = {"Authorization": f"Bearer {token}"}

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _submit(self, quantity):
        with self.app.app_context():
            pr = purchase_request_service.submit(self.client_id, self.product_id, quantity, 1000)
            return pr.id

    def _run_workers(self, targets):
        """Start every (callable, args) pair at once; collect "ok" or the raised exception."""
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(targets))

        def worker(func, args):
            with self.app.app_context():
                try:
                    barrier.wait()
                    func(*args)
                    with lock:
                        results.append("ok")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=target) for target in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _approve(self, request_id):
        purchase_request_service.approve(request_id, actor_id=self.admin_id)

    def _reject(self, request_id):
        purchase_request_service.reject(request_id, actor_id=self.admin_id, reason="Race")

    def _post_statuses(self, urls):
        """POST every url at once through the test client; collect the status codes."""
        statuses = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(urls))

        def worker(url):
            client = self.app.test_client()
            barrier.wait()
            resp = client.post(url, headers=self.admin_headers)
            with lock:
                statuses.append(resp.status_code)

        threads = [threading.Thread(target=worker, args=(url,)) for url in urls]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return statuses

    def _stock(self):
        with self.app.app_context():
            return db.session.get(ManufacturerProduct, self.product_id).stock

    def test_competing_requests_cannot_oversell(self):
        first = self._submit(6)
        second = self._submit(6)

        results = self._run_workers([(self._approve, (first,)), (self._approve, (second,))])

        self.assertEqual(results.count("ok"), 1, results)
        failures = [r for r in results if r != "ok"]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], InsufficientStockError)
        self.assertEqual(self._stock(), 4)

        with self.app.app_context():
            self.assertEqual(db.session.query(Order).count(), 1)
            statuses = sorted(s for (s,) in db.session.query(PurchaseRequest.status).all())
            self.assertEqual(statuses, ["approved", "pending"])

    def test_stock_is_conserved_under_contention(self):
        request_ids = [self._submit(2) for _ in range(8)]

        results = self._run_workers([(self._approve, (rid,)) for rid in request_ids])

        successes = results.count("ok")
        for failure in (r for r in results if r != "ok"):
            self.assertIsInstance(failure, InsufficientStockError)
        stock = self._stock()
        self.assertGreaterEqual(stock, 0)
        self.assertEqual(successes * 2 + stock, 10)

        with self.app.app_context():
            self.assertEqual(db.session.query(Order).count(), successes)
            credited = db.session.query(ClientProduct).filter_by(owner_client_id=self.client_id).one()
            self.assertEqual(credited.current_stock, successes * 2)

    def test_double_approval_executes_once(self):
        request_id = self._submit(3)

        results = self._run_workers([(self._approve, (request_id,)) for _ in range(2)])

        self.assertEqual(results.count("ok"), 1, results)
        self.assertIsInstance([r for r in results if r != "ok"][0], InvalidStateError)
        self.assertEqual(self._stock(), 7)
        with self.app.app_context():
            self.assertEqual(db.session.query(Order).count(), 1)

    def test_order_numbers_unique(self):
        request_ids = [self._submit(1) for _ in range(6)]

        results = self._run_workers([(self._approve, (rid,)) for rid in request_ids])

        self.assertEqual(results.count("ok"), 6, results)
        with self.app.app_context():
            numbers = [n for (n,) in db.session.query(Order.order_number).all()]
        self.assertEqual(len(numbers), 6)
        self.assertEqual(len(set(numbers)), 6)

    def test_approve_reject_race_has_one_winner(self):
        request_id = self._submit(5)

        results = self._run_workers([(self._approve, (request_id,)), (self._reject, (request_id,))])

        self.assertEqual(results.count("ok"), 1, results)
        self.assertIsInstance([r for r in results if r != "ok"][0], InvalidStateError)

        with self.app.app_context():
            pr = db.session.get(PurchaseRequest, request_id)
            orders = db.session.query(Order).count()
            if pr.status == "approved":
                self.assertEqual(orders, 1)
                self.assertEqual(db.session.get(ManufacturerProduct, self.product_id).stock, 5)
            else:
                self.assertEqual(pr.status, "rejected")
                self.assertEqual(orders, 0)
                self.assertEqual(db.session.get(ManufacturerProduct, self.product_id).stock, 10)

    def test_approvals_within_stock_all_succeed(self):
        request_ids = [self._submit(1) for _ in range(4)]

        results = self._run_workers([(self._approve, (rid,)) for rid in request_ids])

        self.assertEqual(results, ["ok"] * 4)
        self.assertEqual(self._stock(), 6)
        with self.app.app_context():
            credited = db.session.query(ClientProduct).filter_by(owner_client_id=self.client_id).one()
            self.assertEqual(credited.current_stock, 4)

    def test_http_approvals_within_stock_all_succeed(self):
        request_ids = [self._submit(2) for _ in range(4)]

        statuses = self._post_statuses([f"/api/purchase-requests/{rid}/approve" for rid in request_ids])

        self.assertEqual(statuses, [200] * 4)
        self.assertEqual(self._stock(), 2)

    def test_http_lost_race_is_a_client_error(self):
        first = self._submit(6)
        second = self._submit(6)
        third = self._submit(1)

        statuses = self._post_statuses([
            f"/api/purchase-requests/{first}/approve",
            f"/api/purchase-requests/{second}/approve",
            f"/api/purchase-requests/{third}/approve",
            f"/api/purchase-requests/{third}/approve",
        ])

        self.assertNotIn(500, statuses)
        self.assertTrue(set(statuses) <= {200, 409, 422, 503}, statuses)
        self.assertEqual(statuses.count(200), 2, statuses)
        self.assertEqual(self._stock(), 3)


if __name__ == "__main__":
    unittest.main()
