"""
Concurrency tests on a file-backed SQLite database.

Verifies:
- Racing sales on one variant never oversell and the ledger replays to the stock
- Points accrual runs on the worker pool, in its own app context and session
- A failing background task is logged and never reaches the caller
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, InventoryTransaction, Order, PointsTransaction, Variant
from backoffice.errors import InsufficientStock
from backoffice.services import catalog_service, order_service
from backoffice.services.inventory_service import replay_stock
from backoffice.tasks import task_queue
from backoffice.validation import validate_order_request


@pytest.fixture(scope='function')
def make_file_app(tmp_path):
    """Factory: make_file_app(**config) -> app on its own SQLite file."""
    apps = []

    def _make(**overrides):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / f'backoffice-{len(apps)}.db'}",
            'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 30}},
            'SESSION_STORE': 'memory',
            'BCRYPT_ROUNDS': 4,
            **overrides,
        })
        with app.app_context():
            db.create_all()
        apps.append(app)
        return app

    yield _make

    task_queue.shutdown(wait=True)
    for app in apps:
        with app.app_context():
            db.drop_all()
            db.engine.dispose()


def _seed_variant(stock: int) -> Variant:
    product = catalog_service.create_product({
        "name": "Wireless Earbuds", "category": "Audio", "base_price": Decimal("4500.00"),
    })
    return catalog_service.add_variant(
        product.id,
        {"variant_type": "Colour", "variant_value": "Black", "stock_quantity": stock},
        actor="tests",
    )


def _order(order_id, product_id, total="4500.00", phone=None):
    return validate_order_request({
        "order_id": order_id,
        "customer_name": "Jane Brown",
        "customer_phone": phone,
        "total": total,
        "items": [{
            "product_id": product_id,
            "variant_type": "Colour",
            "variant_value": "Black",
            "quantity": 1,
            "unit_price": total,
        }],
    })


class TestConcurrentSales:
    def test_racing_orders_never_oversell(self, make_file_app):
        app = make_file_app(TASKS_EAGER=True)
        with app.app_context():
            variant = _seed_variant(stock=5)
            variant_id, product_id = variant.id, variant.product_id

        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        lock = threading.Lock()

        def worker(n):
            with app.app_context():
                try:
                    request = _order(f"RACE-{n}", product_id)
                    barrier.wait()
                    order_service.place_order(request, actor="tests")
                    outcome = "ok"
                except InsufficientStock:
                    outcome = "insufficient"
                except Exception as exc:
                    outcome = exc
                finally:
                    db.session.remove()
                with lock:
                    results.append(outcome)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results, key=str) == ["insufficient"] * 3 + ["ok"] * 5

        with app.app_context():
            variant = db.session.get(Variant, variant_id)
            assert variant.stock_quantity == 0
            assert replay_stock(variant_id) == 0
            assert db.session.query(Order).count() == 5
            sales = db.session.query(InventoryTransaction).filter_by(transaction_type="sale").all()
            assert len(sales) == 5
            assert sorted(s.previous_quantity for s in sales) == [1, 2, 3, 4, 5]


class TestBackgroundTasks:
    def test_accrual_runs_on_worker_pool(self, make_file_app):
        app = make_file_app(TASKS_EAGER=False, TASK_WORKERS=1, TASK_RETRY_ATTEMPTS=5)
        with app.app_context():
            variant = _seed_variant(stock=5)
            product_id = variant.product_id

            for n, total in enumerate(("12500", "2000", "500")):
                order_service.place_order(_order(f"BG-{n}", product_id, total=total, phone="876-555-0101"))

            task_queue.shutdown(wait=True)

            customer = db.session.query(Customer).filter_by(phone="876-555-0101").one()
            assert customer.total_points == 150
            assert customer.total_orders == 3
            entries = db.session.query(PointsTransaction).filter_by(customer_id=customer.id).all()
            assert sorted(e.points_change for e in entries) == [5, 20, 125]

    def test_failed_task_is_logged_not_raised(self, make_file_app, caplog):
        app = make_file_app(TASKS_EAGER=False)

        def _explode():
            raise RuntimeError("points store unavailable")

        with app.app_context():
            future = task_queue.submit(_explode)

        assert future.result(timeout=10) is None
        assert "Background task _explode failed" in caplog.text
        assert "points store unavailable" in caplog.text

    def test_lock_conflict_is_retried(self, make_file_app, caplog):
        app = make_file_app(TASKS_EAGER=False)
        calls = []

        def _flaky():
            calls.append(threading.current_thread().name)
            if len(calls) == 1:
                raise OperationalError("UPDATE customers", {}, Exception("database is locked"))

        with app.app_context():
            task_queue.submit(_flaky).result(timeout=10)

        assert len(calls) == 2
        assert all(name.startswith("backoffice-task") for name in calls)
        assert "Background task" not in caplog.text
