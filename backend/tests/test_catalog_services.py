"""
Catalog and client record tests: products, suppliers, clients and layaways.
"""

from datetime import date

import pytest

from boutique.errors import ConflictError, NotFoundError, ValidationError
from boutique.extensions import db
from boutique.models import LayawayOrder, Product
from boutique.services import customer_service, products_service, sales_service, supplier_service


class TestProducts:
    def test_create_validates_fields(self, admin_user):
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Dress", "size": "M"}, admin_user.id)
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Dress", "size": "XS", "price_cents": 100}, admin_user.id)
        with pytest.raises(ValidationError):
            products_service.create_product({"name": "Dress", "size": "M", "price_cents": 0}, admin_user.id)
        with pytest.raises(ValidationError):
            products_service.create_product(
                {"name": "Dress", "size": "M", "price_cents": 100, "quantity": -1}, admin_user.id
            )
        assert db.session.query(Product).count() == 0

    def test_name_and_size_are_unique_together(self, make_product):
        make_product(name="Dress", size="M")
        make_product(name="Dress", size="G")
        with pytest.raises(ConflictError):
            make_product(name="Dress", size="M")

    def test_update_cannot_touch_quantity(self, product):
        with pytest.raises(ValidationError):
            products_service.update_product(product.id, {"quantity": 99})

        updated = products_service.update_product(product.id, {"price_cents": 12990})
        assert updated.price_cents == 12990
        assert updated.quantity == 10

    def test_update_respects_uniqueness(self, make_product):
        make_product(name="Dress", size="M")
        other = make_product(name="Dress", size="G")
        with pytest.raises(ConflictError):
            products_service.update_product(other.id, {"size": "M"})

    def test_list_search_and_size(self, make_product):
        make_product(name="Linen Dress", size="M")
        make_product(name="Linen Pants", size="G")
        make_product(name="Wool Coat", size="M")

        assert products_service.list_products(search="linen")["count"] == 2
        assert products_service.list_products(search="linen", size="M")["count"] == 1
        paged = products_service.list_products(page=1, per_page=2)
        assert paged["pagination"]["total_pages"] == 2

    def test_delete_only_without_history(self, make_product, admin_user):
        fresh = make_product(name="Sample", size="M", quantity=0)
        stocked = make_product(name="Stocked", size="M", quantity=1)

        fresh_id = fresh.id
        products_service.delete_product(fresh_id)
        assert db.session.get(Product, fresh_id) is None

        with pytest.raises(ConflictError):
            products_service.delete_product(stocked.id)

    def test_supplier_must_exist(self, admin_user):
        with pytest.raises(NotFoundError):
            products_service.create_product(
                {"name": "Dress", "size": "M", "price_cents": 100, "supplier_id": 42}, admin_user.id
            )


class TestSuppliers:
    def test_crud_and_delete_guard(self, admin_user):
        supplier = supplier_service.create_supplier({"name": "Atelier Sul", "phone": "+55 51 3000-0000"})
        products_service.create_product(
            {"name": "Dress", "size": "M", "price_cents": 100, "supplier_id": supplier.id}, admin_user.id
        )

        assert supplier_service.update_supplier(supplier.id, {"notes": "net 30"}).notes == "net 30"
        assert [s.id for s in supplier_service.list_suppliers(search="atelier")] == [supplier.id]

        with pytest.raises(ConflictError):
            supplier_service.delete_supplier(supplier.id)


class TestClients:
    def test_create_requires_name_and_whatsapp(self):
        with pytest.raises(ValidationError):
            customer_service.create_client({"name": "No Phone"})

    def test_birth_date_parsed(self, make_client):
        client = make_client(birth_date="1990-04-12")
        assert client.birth_date == date(1990, 4, 12)

    def test_search(self, make_client):
        make_client(name="Maria Souza")
        make_client(name="Joana Lima", whatsapp="+55 11 97777-7777")

        assert customer_service.list_clients("joana")["count"] == 1
        assert customer_service.list_clients("97777")["count"] == 1

    def test_delete_guarded_by_sales(self, customer, product, salesperson):
        sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
            client_id=customer.id,
        )
        with pytest.raises(ConflictError):
            customer_service.delete_client(customer.id)

    def test_client_sales_history(self, customer, product, salesperson):
        sale = sales_service.create_sale(
            user_id=salesperson.id,
            items=[{"product_id": product.id, "quantity": 1}],
            payment_method="cash",
            client_id=customer.id,
        )
        assert [s.id for s in customer_service.client_sales(customer.id)] == [sale.id]


class TestLayaways:
    def test_lifecycle(self, customer):
        order = customer_service.create_layaway({"client_id": customer.id, "size": "M", "notes": "red dress"})
        assert order.fulfilled is False

        customer_service.update_layaway(order.id, {"fulfilled": True})
        assert customer_service.list_layaways(fulfilled=False) == []
        assert [o.id for o in customer_service.list_layaways(fulfilled=True)] == [order.id]

        customer_service.delete_layaway(order.id)
        assert db.session.query(LayawayOrder).count() == 0

    def test_size_and_client_validated(self, customer):
        with pytest.raises(ValidationError):
            customer_service.create_layaway({"client_id": customer.id, "size": "XXXL"})
        with pytest.raises(NotFoundError):
            customer_service.create_layaway({"client_id": 999, "size": "M"})
