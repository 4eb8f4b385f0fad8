"""
Return tests: creation limits, approval side effects and rejection.
"""

import pytest

from boutique.errors import InvalidQuantity, InvalidStateError, NotFoundError, ValidationError
from boutique.extensions import db
from boutique.models import Credit, Product, Return, StockMovement
from boutique.services import return_service, sales_service


@pytest.fixture
def completed_sale(make_product, salesperson, customer):
    """Completed sale: 2 x 50.00 blouse and 1 x 25.50 scarf."""
    blouse = make_product(name="Blouse", size="M", quantity=5, price_cents=5000)
    scarf = make_product(name="Scarf", size="P", quantity=5, price_cents=2550)
    return sales_service.create_sale(
        user_id=salesperson.id,
        items=[{"product_id": blouse.id, "quantity": 2}, {"product_id": scarf.id, "quantity": 1}],
        payment_method="cash",
        client_id=customer.id,
        settle=True,
    )


def _lines(sale):
    return {item.product.name: item for item in sale.items}


class TestCreateReturn:
    def test_creates_pending_return_valued_at_sale_price(self, completed_sale, customer, salesperson):
        lines = _lines(completed_sale)
        ret = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="too small",
            items=[
                {"sale_item_id": lines["Blouse"].id, "quantity": 1},
                {"sale_item_id": lines["Scarf"].id, "quantity": 1},
            ],
            user_id=salesperson.id,
        )

        assert ret.status == "pending"
        assert ret.total_cents == 7550
        assert [i.subtotal_cents for i in ret.items] == [5000, 2550]
        # Nothing moves until approval
        assert db.session.query(StockMovement).filter_by(return_id=ret.id).count() == 0
        assert db.session.query(Credit).count() == 0

    def test_quantity_bounded_by_sold_quantity(self, completed_sale, customer, salesperson):
        blouse = _lines(completed_sale)["Blouse"]
        with pytest.raises(InvalidQuantity) as exc:
            return_service.create_return(
                sale_id=completed_sale.id,
                client_id=customer.id,
                reason="x",
                items=[{"sale_item_id": blouse.id, "quantity": 3}],
                user_id=salesperson.id,
            )
        assert exc.value.details["available"] == 2

    def test_quantity_bounded_by_earlier_returns(self, completed_sale, customer, salesperson):
        blouse = _lines(completed_sale)["Blouse"]
        return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="first",
            items=[{"sale_item_id": blouse.id, "quantity": 2}],
            user_id=salesperson.id,
        )
        with pytest.raises(InvalidQuantity):
            return_service.create_return(
                sale_id=completed_sale.id,
                client_id=customer.id,
                reason="second",
                items=[{"sale_item_id": blouse.id, "quantity": 1}],
                user_id=salesperson.id,
            )

    def test_zero_quantity_rejected(self, completed_sale, customer, salesperson):
        with pytest.raises(InvalidQuantity):
            return_service.create_return(
                sale_id=completed_sale.id,
                client_id=customer.id,
                reason="x",
                items=[{"sale_item_id": _lines(completed_sale)["Blouse"].id, "quantity": 0}],
                user_id=salesperson.id,
            )

    def test_only_completed_sales(self, product, customer, salesperson):
        pending = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
            client_id=customer.id,
        )
        with pytest.raises(InvalidStateError):
            return_service.create_return(
                sale_id=pending.id,
                client_id=customer.id,
                reason="x",
                items=[{"sale_item_id": pending.items[0].id, "quantity": 1}],
                user_id=salesperson.id,
            )

    def test_sale_item_must_belong_to_sale(self, completed_sale, product, customer, salesperson):
        other = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
            settle=True,
        )
        with pytest.raises(NotFoundError):
            return_service.create_return(
                sale_id=completed_sale.id,
                client_id=customer.id,
                reason="x",
                items=[{"sale_item_id": other.items[0].id, "quantity": 1}],
                user_id=salesperson.id,
            )

    def test_reason_and_items_required(self, completed_sale, customer, salesperson):
        with pytest.raises(ValidationError):
            return_service.create_return(
                sale_id=completed_sale.id, client_id=customer.id, reason="", items=[{"sale_item_id": 1, "quantity": 1}],
                user_id=salesperson.id,
            )
        with pytest.raises(ValidationError):
            return_service.create_return(
                sale_id=completed_sale.id, client_id=customer.id, reason="x", items=[], user_id=salesperson.id
            )


class TestApproveReturn:
    def test_restores_stock_and_issues_one_credit(self, completed_sale, customer, salesperson, admin_user):
        lines = _lines(completed_sale)
        ret = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="changed mind",
            items=[
                {"sale_item_id": lines["Blouse"].id, "quantity": 1},
                {"sale_item_id": lines["Scarf"].id, "quantity": 1},
            ],
            user_id=salesperson.id,
        )

        approved = return_service.approve_return(ret.id, admin_user.id)

        assert approved.status == "approved"
        assert approved.approved_by_id == admin_user.id
        assert db.session.get(Product, lines["Blouse"].product_id).quantity == 4
        assert db.session.get(Product, lines["Scarf"].product_id).quantity == 5

        credits = db.session.query(Credit).filter_by(client_id=customer.id).all()
        assert len(credits) == 1
        assert credits[0].amount_cents == 7550
        assert credits[0].origin == "return"
        assert credits[0].return_id == ret.id
        assert credits[0].status == "available"

        movements = db.session.query(StockMovement).filter_by(return_id=ret.id).all()
        assert {m.reason for m in movements} == {f"return #{ret.id}"}
        assert all(m.kind == "inbound" for m in movements)

    def test_cannot_approve_twice(self, completed_sale, customer, salesperson, admin_user):
        ret = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="x",
            items=[{"sale_item_id": _lines(completed_sale)["Scarf"].id, "quantity": 1}],
            user_id=salesperson.id,
        )
        return_service.approve_return(ret.id, admin_user.id)

        with pytest.raises(InvalidStateError):
            return_service.approve_return(ret.id, admin_user.id)
        assert db.session.query(Credit).count() == 1


class TestRejectReturn:
    def test_reject_moves_nothing_and_frees_quantity(self, completed_sale, customer, salesperson, admin_user):
        blouse = _lines(completed_sale)["Blouse"]
        ret = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="stain",
            items=[{"sale_item_id": blouse.id, "quantity": 2}],
            user_id=salesperson.id,
        )

        rejected = return_service.reject_return(ret.id, "worn item", admin_user.id)

        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "worn item"
        assert db.session.get(Product, blouse.product_id).quantity == 3
        assert db.session.query(Credit).count() == 0

        again = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="second try",
            items=[{"sale_item_id": blouse.id, "quantity": 2}],
            user_id=salesperson.id,
        )
        assert again.status == "pending"

    def test_rejection_reason_required(self, completed_sale, customer, salesperson, admin_user):
        ret = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="x",
            items=[{"sale_item_id": _lines(completed_sale)["Scarf"].id, "quantity": 1}],
            user_id=salesperson.id,
        )
        with pytest.raises(ValidationError):
            return_service.reject_return(ret.id, " ", admin_user.id)

    def test_decided_returns_are_final(self, completed_sale, customer, salesperson, admin_user):
        scarf = _lines(completed_sale)["Scarf"]
        rejected = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="x",
            items=[{"sale_item_id": scarf.id, "quantity": 1}],
            user_id=salesperson.id,
        )
        return_service.reject_return(rejected.id, "worn item", admin_user.id)

        with pytest.raises(InvalidStateError):
            return_service.approve_return(rejected.id, admin_user.id)
        assert db.session.query(Credit).count() == 0
        assert db.session.get(Product, scarf.product_id).quantity == 4

        approved = return_service.create_return(
            sale_id=completed_sale.id,
            client_id=customer.id,
            reason="y",
            items=[{"sale_item_id": scarf.id, "quantity": 1}],
            user_id=salesperson.id,
        )
        return_service.approve_return(approved.id, admin_user.id)
        with pytest.raises(InvalidStateError):
            return_service.reject_return(approved.id, "too late", admin_user.id)
        assert db.session.get(Return, approved.id).status == "approved"

    def test_unknown_return(self, admin_user):
        with pytest.raises(NotFoundError):
            return_service.approve_return(999, admin_user.id)
        with pytest.raises(NotFoundError):
            return_service.reject_return(999, "x", admin_user.id)

    def test_list_filters_by_status(self, completed_sale, customer, salesperson, admin_user):
        lines = _lines(completed_sale)
        r1 = return_service.create_return(
            sale_id=completed_sale.id, client_id=customer.id, reason="a",
            items=[{"sale_item_id": lines["Scarf"].id, "quantity": 1}], user_id=salesperson.id,
        )
        return_service.create_return(
            sale_id=completed_sale.id, client_id=customer.id, reason="b",
            items=[{"sale_item_id": lines["Blouse"].id, "quantity": 1}], user_id=salesperson.id,
        )
        return_service.approve_return(r1.id, admin_user.id)

        approved = return_service.list_returns(status="approved")
        assert [r["id"] for r in approved["items"]] == [r1.id]
        assert return_service.list_returns(client_name="souza")["pagination"]["total"] == 2
