"""
Stock ledger tests.

Every quantity change must leave exactly one movement row behind, and a
product's quantity must always equal the signed sum of its movements.
"""

import pytest

from boutique.errors import InsufficientStock, NotFoundError, ValidationError
from boutique.extensions import db
from boutique.models import Product, StockMovement
from boutique.models.inventory import MOVEMENT_INBOUND, MOVEMENT_OUTBOUND
from boutique.services import ledger_service
from boutique.services.transaction import transaction_scope


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


class TestOpeningStock:
    def test_initial_quantity_is_booked_as_movement(self, product):
        movements = _movements(product.id)
        assert len(movements) == 1
        assert movements[0].kind == MOVEMENT_INBOUND
        assert movements[0].quantity == 10
        assert movements[0].reason == "initial stock"

    def test_zero_opening_stock_records_nothing(self, make_product):
        p = make_product(name="Silk Scarf", size="P", quantity=0)
        assert p.quantity == 0
        assert _movements(p.id) == []


class TestAddRemove:
    def test_add_stock(self, product, stock_clerk):
        movement = ledger_service.add_stock(product.id, 5, "supplier delivery", stock_clerk.id)

        assert db.session.get(Product, product.id).quantity == 15
        assert movement.kind == MOVEMENT_INBOUND
        assert movement.quantity == 5
        assert movement.signed_quantity == 5
        assert movement.actor_id == stock_clerk.id

    def test_remove_stock(self, product, stock_clerk):
        movement = ledger_service.remove_stock(product.id, 4, "damaged", stock_clerk.id)

        assert db.session.get(Product, product.id).quantity == 6
        assert movement.kind == MOVEMENT_OUTBOUND
        assert movement.signed_quantity == -4

    def test_remove_down_to_zero_is_allowed(self, product, stock_clerk):
        ledger_service.remove_stock(product.id, 10, "display samples", stock_clerk.id)
        assert db.session.get(Product, product.id).quantity == 0

    def test_remove_more_than_available_fails_without_side_effects(self, product, stock_clerk):
        with pytest.raises(InsufficientStock) as exc:
            ledger_service.remove_stock(product.id, 11, "oops", stock_clerk.id)

        assert exc.value.details == {"product_id": product.id, "available": 10, "required": 11}
        assert db.session.get(Product, product.id).quantity == 10
        assert len(_movements(product.id)) == 1

    @pytest.mark.parametrize("quantity", [0, -3, "1.5", None])
    def test_quantity_must_be_positive_integer(self, product, stock_clerk, quantity):
        with pytest.raises(ValidationError):
            ledger_service.add_stock(product.id, quantity, "delivery", stock_clerk.id)

    def test_reason_is_required(self, product, stock_clerk):
        with pytest.raises(ValidationError):
            ledger_service.add_stock(product.id, 1, "  ", stock_clerk.id)

    def test_unknown_product(self, stock_clerk):
        with pytest.raises(NotFoundError):
            ledger_service.add_stock(999, 1, "delivery", stock_clerk.id)


class TestAdjustQuantity:
    def test_zero_delta_rejected(self, product, stock_clerk):
        with pytest.raises(ValidationError):
            with transaction_scope() as session:
                ledger_service.adjust_quantity(
                    session, product_id=product.id, delta=0, reason="noop", actor_id=stock_clerk.id
                )

    def test_kind_must_match_sign(self, product, stock_clerk):
        with pytest.raises(ValidationError):
            with transaction_scope() as session:
                ledger_service.adjust_quantity(
                    session,
                    product_id=product.id,
                    delta=2,
                    kind=MOVEMENT_OUTBOUND,
                    reason="mismatch",
                    actor_id=stock_clerk.id,
                )

    def test_failure_rolls_back_earlier_changes_in_scope(self, product, make_product, stock_clerk):
        other = make_product(name="Wool Coat", size="G", quantity=1)

        with pytest.raises(InsufficientStock):
            with transaction_scope() as session:
                ledger_service.adjust_quantity(
                    session, product_id=product.id, delta=-3, reason="bundle", actor_id=stock_clerk.id
                )
                ledger_service.adjust_quantity(
                    session, product_id=other.id, delta=-2, reason="bundle", actor_id=stock_clerk.id
                )

        assert db.session.get(Product, product.id).quantity == 10
        assert db.session.get(Product, other.id).quantity == 1
        assert len(_movements(product.id)) == 1


class TestSetQuantity:
    def test_records_delta_as_single_movement(self, product, stock_clerk):
        with transaction_scope() as session:
            movement = ledger_service.set_quantity(
                session, product_id=product.id, new_quantity=7, reason="inventory adjustment", actor_id=stock_clerk.id
            )
        assert movement.kind == MOVEMENT_OUTBOUND
        assert movement.quantity == 3
        assert db.session.get(Product, product.id).quantity == 7

    def test_unchanged_quantity_records_nothing(self, product, stock_clerk):
        with transaction_scope() as session:
            movement = ledger_service.set_quantity(
                session, product_id=product.id, new_quantity=10, reason="inventory adjustment", actor_id=stock_clerk.id
            )
        assert movement is None
        assert len(_movements(product.id)) == 1

    def test_negative_target_rejected(self, product, stock_clerk):
        with pytest.raises(ValidationError):
            with transaction_scope() as session:
                ledger_service.set_quantity(
                    session, product_id=product.id, new_quantity=-1, reason="x", actor_id=stock_clerk.id
                )


class TestLedgerConsistency:
    def test_quantity_equals_movement_sum(self, product, stock_clerk):
        ledger_service.add_stock(product.id, 8, "delivery", stock_clerk.id)
        ledger_service.remove_stock(product.id, 3, "damaged", stock_clerk.id)
        with pytest.raises(InsufficientStock):
            ledger_service.remove_stock(product.id, 100, "too many", stock_clerk.id)

        result = ledger_service.verify_ledger(product.id)
        assert result["quantity"] == 15
        assert result["movement_total"] == 15
        assert result["consistent"] is True


class TestMovementQueries:
    def test_filters(self, product, make_product, stock_clerk):
        other = make_product(name="Denim Jacket", size="G", quantity=2)
        ledger_service.remove_stock(product.id, 1, "damaged", stock_clerk.id)

        outbound = ledger_service.list_movements(kind=MOVEMENT_OUTBOUND)
        assert outbound["pagination"]["total"] == 1
        assert outbound["items"][0]["product_id"] == product.id

        by_name = ledger_service.list_movements(product_name="denim")
        assert [m["product_id"] for m in by_name["items"]] == [other.id]

    def test_newest_first_and_paginated(self, product, stock_clerk):
        for i in range(3):
            ledger_service.add_stock(product.id, i + 1, f"delivery {i}", stock_clerk.id)

        page = ledger_service.list_movements(product_id=product.id, page=1, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 4
        assert page["pagination"]["has_next"] is True
        assert page["items"][0]["reason"] == "delivery 2"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            ledger_service.list_movements(kind="sideways")


class TestStockLevels:
    @pytest.mark.parametrize(
        "quantity,level",
        [(0, "low"), (5, "low"), (6, "medium"), (10, "medium"), (11, "adequate")],
    )
    def test_thresholds(self, app, quantity, level):
        assert ledger_service.stock_level(quantity) == level

    def test_overview_and_low_stock(self, make_product):
        low = make_product(name="Belt", size="M", quantity=2, price_cents=3000)
        make_product(name="Blazer", size="M", quantity=20, price_cents=25000)

        overview = {row["id"]: row for row in ledger_service.stock_overview()}
        assert overview[low.id]["level"] == "low"
        assert overview[low.id]["stock_value_cents"] == 6000

        assert [p["id"] for p in ledger_service.low_stock()] == [low.id]
