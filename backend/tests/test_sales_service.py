"""
Sales service tests: atomic create, discounts, installments and cancellation.
"""

from datetime import date, timedelta

import pytest

from boutique.errors import (
    AlreadyCancelled,
    InsufficientStock,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from boutique.extensions import db
from boutique.models import Product, Sale, SaleItem, StockMovement
from boutique.models.sales import INSTALLMENT_STATUS_CANCELLED, INSTALLMENT_STATUS_PENDING
from boutique.services import ledger_service, payment_service, return_service, sales_service
from boutique.time_utils import utcnow


def _quantity(product_id):
    return db.session.get(Product, product_id).quantity


class TestCreateSale:
    def test_creates_pending_sale_and_debits_stock(self, product, salesperson, customer):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 2}],
            payment_method="cash",
            client_id=customer.id,
        )

        assert sale.status == "pending"
        assert sale.subtotal_cents == 20000
        assert sale.total_cents == 20000
        assert sale.items[0].unit_price_cents == 10000
        assert _quantity(product.id) == 8

        movement = (
            db.session.query(StockMovement)
            .filter_by(sale_id=sale.id)
            .one()
        )
        assert movement.kind == "outbound"
        assert movement.quantity == 2
        assert movement.reason == f"sale #{sale.id}"

    def test_explicit_unit_price_overrides_catalog_price(self, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 8500}],
            payment_method="pix",
        )
        assert sale.total_cents == 8500

    def test_failure_on_any_item_writes_nothing(self, make_product, salesperson):
        p1 = make_product(name="Top", size="P", quantity=5)
        p2 = make_product(name="Skirt", size="M", quantity=1)
        p3 = make_product(name="Bag", size="M", quantity=5)

        with pytest.raises(InsufficientStock) as exc:
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[
                    {"product_id": p1.id, "quantity": 1},
                    {"product_id": p2.id, "quantity": 2},
                    {"product_id": p3.id, "quantity": 1},
                ],
                payment_method="cash",
            )

        assert exc.value.details["product_id"] == p2.id
        assert exc.value.details["available"] == 1
        assert exc.value.details["required"] == 2
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0
        assert db.session.query(StockMovement).filter(StockMovement.sale_id.isnot(None)).count() == 0
        assert (_quantity(p1.id), _quantity(p2.id), _quantity(p3.id)) == (5, 1, 5)

    def test_repeated_product_lines_are_checked_together(self, make_product, salesperson):
        p = make_product(name="Tee", size="M", quantity=3)
        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[{"product_id": p.id, "quantity": 2}, {"product_id": p.id, "quantity": 2}],
                payment_method="cash",
            )
        assert _quantity(p.id) == 3

    def test_last_unit_cannot_be_sold_twice(self, make_product, salesperson):
        p = make_product(name="Last Piece", size="G", quantity=1)
        sales_service.create_sale(
            user_id=salesperson.id, items=[{"product_id": p.id, "quantity": 1}], payment_method="cash"
        )
        with pytest.raises(InsufficientStock):
            sales_service.create_sale(
                user_id=salesperson.id, items=[{"product_id": p.id, "quantity": 1}], payment_method="cash"
            )
        assert _quantity(p.id) == 0

    @pytest.mark.parametrize(
        "items",
        [None, [], [{"quantity": 1}], [{"product_id": 1, "quantity": 0}], [{"product_id": 1, "quantity": "2.5"}]],
    )
    def test_invalid_items(self, salesperson, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(user_id=salesperson.id, items=items, payment_method="cash")

    def test_unknown_product_or_client(self, product, salesperson):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                user_id=salesperson.id, items=[{"product_id": 999, "quantity": 1}], payment_method="cash"
            )
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="cash",
                client_id=999,
            )
        assert _quantity(product.id) == 10

    def test_unknown_payment_method(self, product, salesperson):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                user_id=salesperson.id, items=[{"product_id": product.id, "quantity": 1}], payment_method="barter"
            )

    def test_settle_completes_at_checkout(self, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="debit_card",
            settle=True,
        )
        summary = payment_service.payment_summary(sale.id)
        assert sale.status == "completed"
        assert summary["paid_cents"] == 10000
        assert summary["remaining_cents"] == 0


class TestDiscounts:
    def test_compute_discount_absolute_wins(self):
        assert sales_service.compute_discount(10000, discount_cents=500, discount_bps=5000) == (500, None)

    def test_compute_discount_percentage_rounds_half_up(self):
        # 12.5% of 99.99 = 12.49875 -> 12.50
        assert sales_service.compute_discount(9999, discount_bps=1250) == (1250, 1250)

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError):
            sales_service.compute_discount(1000, discount_cents=1001)
        with pytest.raises(ValidationError):
            sales_service.compute_discount(1000, discount_bps=10001)

    def test_sale_total_is_subtotal_minus_discount(self, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 3}],
            payment_method="cash",
            discount_bps=1000,
        )
        assert sale.subtotal_cents == 30000
        assert sale.discount_cents == 3000
        assert sale.discount_bps == 1000
        assert sale.total_cents == 27000


class TestInstallments:
    def test_plan_splits_total_monthly(self, product, salesperson, customer):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="installment",
            client_id=customer.id,
            installment_count=3,
            first_due_date="2026-01-31",
        )
        plan = payment_service.list_installments(sale.id)

        assert [i.amount_cents for i in plan] == [3333, 3333, 3334]
        assert [i.due_date for i in plan] == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31)]
        assert all(i.status == INSTALLMENT_STATUS_PENDING for i in plan)

    def test_installments_need_client(self, product, salesperson):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="installment",
                installment_count=2,
                first_due_date="2026-01-10",
            )

    def test_first_due_date_defaults_to_store_due_days(self, product, salesperson, customer):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="installment",
            client_id=customer.id,
            installment_count=2,
        )
        expected = utcnow().date() + timedelta(days=30)
        assert sale.first_due_date == expected
        assert [i.due_date for i in payment_service.list_installments(sale.id)][0] == expected

    def test_bad_first_due_date(self, product, salesperson, customer):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="installment",
                client_id=customer.id,
                installment_count=2,
                first_due_date="10/01/2026",
            )

    def test_installment_count_is_capped(self, product, salesperson, customer):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                user_id=salesperson.id,
                items=[{"product_id": product.id, "quantity": 1}],
                payment_method="installment",
                client_id=customer.id,
                installment_count=7,
                first_due_date="2026-01-10",
            )


class TestCancelSale:
    def test_restores_each_item_exactly(self, make_product, salesperson, stock_clerk):
        p1 = make_product(name="Shirt", size="M", quantity=10)
        p2 = make_product(name="Shorts", size="P", quantity=4)
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": p1.id, "quantity": 3}, {"product_id": p2.id, "quantity": 1}],
            payment_method="cash",
        )
        # Unrelated movement in between
        ledger_service.add_stock(p1.id, 5, "delivery", stock_clerk.id)

        cancelled = sales_service.cancel_sale(sale.id, "client changed mind", salesperson.id)

        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert "Cancelled: client changed mind" in cancelled.notes
        assert _quantity(p1.id) == 15
        assert _quantity(p2.id) == 4
        assert ledger_service.verify_ledger(p1.id)["consistent"]
        assert ledger_service.verify_ledger(p2.id)["consistent"]

    def test_cannot_cancel_twice(self, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id, items=[{"product_id": product.id, "quantity": 2}], payment_method="cash"
        )
        sales_service.cancel_sale(sale.id, "mistake", salesperson.id)

        with pytest.raises(AlreadyCancelled):
            sales_service.cancel_sale(sale.id, "again", salesperson.id)
        assert _quantity(product.id) == 10

    def test_reason_required(self, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id, items=[{"product_id": product.id, "quantity": 1}], payment_method="cash"
        )
        with pytest.raises(ValidationError):
            sales_service.cancel_sale(sale.id, "", salesperson.id)

    def test_unknown_sale(self, salesperson):
        with pytest.raises(NotFoundError):
            sales_service.cancel_sale(999, "mistake", salesperson.id)

    def test_cancel_cancels_pending_installments(self, product, salesperson, customer):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="installment",
            client_id=customer.id,
            installment_count=2,
            first_due_date="2026-03-10",
        )
        sales_service.cancel_sale(sale.id, "gave up", salesperson.id)
        assert {i.status for i in payment_service.list_installments(sale.id)} == {INSTALLMENT_STATUS_CANCELLED}

    def test_cancel_skips_quantities_already_returned(self, product, salesperson, admin_user, customer):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 3}],
            payment_method="cash",
            client_id=customer.id,
            settle=True,
        )
        ret = return_service.create_return(
            sale_id=sale.id,
            client_id=customer.id,
            reason="wrong size",
            items=[{"sale_item_id": sale.items[0].id, "quantity": 1}],
            user_id=salesperson.id,
        )

        with pytest.raises(InvalidStateError):
            sales_service.cancel_sale(sale.id, "pending return", salesperson.id)

        return_service.approve_return(ret.id, admin_user.id)
        assert _quantity(product.id) == 8

        sales_service.cancel_sale(sale.id, "full refund", salesperson.id)
        assert _quantity(product.id) == 10
        assert ledger_service.verify_ledger(product.id)["consistent"]


class TestSaleQueries:
    def test_list_and_filter(self, make_product, salesperson, make_client):
        p = make_product()
        maria = make_client(name="Maria Souza")
        joana = make_client(name="Joana Lima", whatsapp="+55 11 95555-5555")
        s1 = sales_service.create_sale(
            user_id=salesperson.id, items=[{"product_id": p.id, "quantity": 1}], payment_method="cash", client_id=maria.id
        )
        sales_service.create_sale(
            user_id=salesperson.id, items=[{"product_id": p.id, "quantity": 1}], payment_method="cash", client_id=joana.id
        )
        sales_service.cancel_sale(s1.id, "test", salesperson.id)

        by_client = sales_service.list_sales(client_name="maria")
        assert [s["id"] for s in by_client["items"]] == [s1.id]

        cancelled = sales_service.list_sales(status="cancelled")
        assert cancelled["pagination"]["total"] == 1

        with pytest.raises(ValidationError):
            sales_service.list_sales(status="lost")

    def test_sales_by_product(self, make_product, salesperson):
        dress = make_product(name="Linen Dress")
        coat = make_product(name="Wool Coat", size="G")
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": dress.id, "quantity": 1}, {"product_id": coat.id, "quantity": 1}],
            payment_method="cash",
        )
        assert [s.id for s in sales_service.sales_by_product("linen")] == [sale.id]
        assert sales_service.sales_by_product("silk") == []
