"""
Inventory ledger tests.

Verifies:
- Every stock change appends exactly one ledger row
- Replaying the ledger from 0 reproduces stored stock
- Stock never goes negative
- Kind/sign rules for sale, restock, refund, adjustment
"""

import pytest

from backoffice.extensions import db
from backoffice.models import InventoryTransaction
from backoffice.errors import InsufficientStock, InvalidAdjustment, VariantNotFound
from backoffice.services import inventory_service


def _ledger(variant_id):
    return (
        db.session.query(InventoryTransaction)
        .filter_by(variant_id=variant_id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )


class TestLedgerEntries:
    def test_initial_stock_is_logged_as_restock(self, make_variant):
        variant = make_variant(stock=10)

        rows = _ledger(variant.id)
        assert len(rows) == 1
        assert rows[0].transaction_type == "restock"
        assert rows[0].previous_quantity == 0
        assert rows[0].quantity_change == 10
        assert rows[0].new_quantity == 10
        assert rows[0].notes == "Initial stock"

    def test_each_adjustment_appends_one_row(self, make_variant):
        variant = make_variant(stock=10)

        result = inventory_service.adjust_stock(variant.id, -3, "sale", reference="ORD-1", actor="alice")

        assert result.previous_quantity == 10
        assert result.new_quantity == 7
        rows = _ledger(variant.id)
        assert len(rows) == 2
        sale = rows[-1]
        assert sale.transaction_type == "sale"
        assert sale.quantity_change == -3
        assert sale.reference_order_id == "ORD-1"
        assert sale.created_by == "alice"

    def test_previous_plus_change_equals_new(self, make_variant):
        variant = make_variant(stock=5)
        inventory_service.restock(variant.id, 7, note="Supplier delivery")
        inventory_service.adjust_stock(variant.id, -2, "adjustment", note="Damaged")
        inventory_service.adjust_stock(variant.id, -4, "sale", reference="ORD-2")

        for row in _ledger(variant.id):
            assert row.previous_quantity + row.quantity_change == row.new_quantity

    def test_consecutive_rows_chain(self, make_variant):
        variant = make_variant(stock=5)
        inventory_service.restock(variant.id, 3)
        inventory_service.adjust_stock(variant.id, -1, "adjustment")

        rows = _ledger(variant.id)
        for before, after in zip(rows, rows[1:]):
            assert after.previous_quantity == before.new_quantity


class TestReplay:
    def test_replay_matches_stored_stock(self, make_variant):
        variant = make_variant(stock=10)
        inventory_service.adjust_stock(variant.id, -4, "sale", reference="A")
        inventory_service.adjust_stock(variant.id, -4, "sale", reference="B")
        inventory_service.adjust_stock(variant.id, 4, "refund", reference="A")
        inventory_service.adjust_stock(variant.id, -1, "adjustment")

        db.session.refresh(variant)
        assert variant.stock_quantity == 5
        assert inventory_service.replay_stock(variant.id) == 5
        assert inventory_service.find_ledger_mismatches() == []

    def test_mismatch_is_reported(self, make_variant):
        variant = make_variant(stock=10)
        # Simulate an out-of-band write that bypassed the ledger
        db.session.execute(
            InventoryTransaction.__table__.delete().where(InventoryTransaction.variant_id == variant.id)
        )
        db.session.commit()

        mismatches = inventory_service.find_ledger_mismatches()
        assert mismatches == [{"variant_id": variant.id, "stock_quantity": 10, "ledger_quantity": 0}]


class TestNoNegativeStock:
    def test_sale_beyond_stock_raises_insufficient_stock(self, make_variant):
        variant = make_variant(stock=2)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.adjust_stock(variant.id, -5, "sale", product_name="Wireless Earbuds")

        assert exc_info.value.available == 2
        assert exc_info.value.requested == 5
        assert "Wireless Earbuds" in exc_info.value.message
        db.session.refresh(variant)
        assert variant.stock_quantity == 2
        assert len(_ledger(variant.id)) == 1

    def test_adjustment_below_zero_is_rejected(self, make_variant):
        variant = make_variant(stock=3)

        with pytest.raises(InvalidAdjustment):
            inventory_service.adjust_stock(variant.id, -4, "adjustment")

        db.session.refresh(variant)
        assert variant.stock_quantity == 3

    def test_sale_down_to_exactly_zero_is_allowed(self, make_variant):
        variant = make_variant(stock=3)

        result = inventory_service.adjust_stock(variant.id, -3, "sale")

        assert result.new_quantity == 0
        rows = inventory_service.list_out_of_stock()
        assert [r["variant_id"] for r in rows] == [variant.id]


class TestKindRules:
    @pytest.mark.parametrize(
        "kind,delta",
        [
            ("sale", 2),
            ("restock", -2),
            ("refund", -1),
            ("sale", 0),
            ("shrinkage", -1),
        ],
    )
    def test_invalid_kind_or_sign(self, make_variant, kind, delta):
        variant = make_variant(stock=10)

        with pytest.raises(InvalidAdjustment):
            inventory_service.adjust_stock(variant.id, delta, kind)

        assert len(_ledger(variant.id)) == 1

    def test_adjustment_accepts_either_sign(self, make_variant):
        variant = make_variant(stock=10)

        assert inventory_service.adjust_stock(variant.id, 2, "adjustment").new_quantity == 12
        assert inventory_service.adjust_stock(variant.id, -5, "adjustment").new_quantity == 7

    def test_unknown_variant(self, db_session):
        with pytest.raises(VariantNotFound):
            inventory_service.adjust_stock(9999, 1, "restock")

    def test_restock_requires_positive_quantity(self, make_variant):
        variant = make_variant(stock=1)

        with pytest.raises(InvalidAdjustment):
            inventory_service.restock(variant.id, 0)


class TestStockViews:
    def test_low_stock_lists_in_stock_variants_at_or_below_threshold(self, make_product, make_variant):
        product = make_product()
        low = make_variant(stock=2, threshold=3, product=product, variant_value="Black")
        make_variant(stock=8, threshold=3, product=product, variant_value="White")
        make_variant(stock=0, threshold=3, product=product, variant_value="Red")

        rows = inventory_service.list_low_stock()

        assert [r["variant_id"] for r in rows] == [low.id]
        assert rows[0]["product_name"] == product.name
