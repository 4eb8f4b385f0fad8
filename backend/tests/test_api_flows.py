"""
End-to-end flows over the HTTP API: sale -> payments -> return -> credit,
stock entry / exit, inventory count and file import.
"""

import io

from boutique.extensions import db
from boutique.models import Product
from boutique.services import import_service, sales_service


def _create_sale(client, headers, product_id, quantity=1, **extra):
    body = {"items": [{"product_id": product_id, "quantity": quantity}], "payment_method": "cash", **extra}
    return client.post('/api/sales', headers=headers, json=body)


class TestSalesApi:
    def test_create_sale(self, client, salesperson_headers, product):
        resp = _create_sale(client, salesperson_headers, product.id, quantity=2)
        assert resp.status_code == 201
        sale = resp.get_json()['sale']
        assert sale['status'] == 'pending'
        assert sale['total_cents'] == 20000
        assert len(sale['items']) == 1

    def test_insufficient_stock_is_409_with_details(self, client, salesperson_headers, product):
        resp = _create_sale(client, salesperson_headers, product.id, quantity=11)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body['error'] == 'insufficient_stock'
        assert body['product_id'] == product.id
        assert body['available'] == 10
        assert body['required'] == 11

    def test_payment_flow(self, client, salesperson_headers, product):
        sale_id = _create_sale(client, salesperson_headers, product.id).get_json()['sale']['id']

        first = client.post(f'/api/sales/{sale_id}/payments', headers=salesperson_headers,
                            json={'amount_cents': 4000, 'method': 'pix'})
        assert first.status_code == 201
        assert first.get_json()['summary']['remaining_cents'] == 6000

        over = client.post(f'/api/sales/{sale_id}/payments', headers=salesperson_headers,
                           json={'amount_cents': 6100, 'method': 'cash'})
        assert over.status_code == 400
        assert over.get_json()['error'] == 'overpayment'

        last = client.post(f'/api/sales/{sale_id}/payments', headers=salesperson_headers,
                           json={'amount_cents': 6000, 'method': 'cash'})
        assert last.get_json()['summary']['status'] == 'completed'

        payments = client.get(f'/api/sales/{sale_id}/payments', headers=salesperson_headers).get_json()
        assert payments['count'] == 2

    def test_cancel_twice(self, client, salesperson_headers, product):
        sale_id = _create_sale(client, salesperson_headers, product.id).get_json()['sale']['id']

        first = client.post(f'/api/sales/{sale_id}/cancel', headers=salesperson_headers, json={'reason': 'oops'})
        assert first.status_code == 200
        second = client.post(f'/api/sales/{sale_id}/cancel', headers=salesperson_headers, json={'reason': 'oops'})
        assert second.status_code == 409
        assert second.get_json()['error'] == 'already_cancelled'
        assert db.session.get(Product, product.id).quantity == 10

    def test_list_with_date_range(self, client, salesperson_headers, product):
        _create_sale(client, salesperson_headers, product.id)
        resp = client.get('/api/sales?start=2000-01-01&end=2999-12-31', headers=salesperson_headers)
        assert resp.get_json()['pagination']['total'] == 1

        bad = client.get('/api/sales?start=yesterday', headers=salesperson_headers)
        assert bad.status_code == 400


class TestReturnCreditApi:
    def test_return_to_credit_to_new_sale(self, client, salesperson_headers, admin_headers, product, customer):
        sale = _create_sale(
            client, salesperson_headers, product.id, quantity=2, client_id=customer.id, settle=True
        ).get_json()['sale']
        assert sale['status'] == 'completed'

        ret = client.post('/api/returns', headers=salesperson_headers, json={
            'sale_id': sale['id'],
            'client_id': customer.id,
            'reason': 'wrong size',
            'items': [{'sale_item_id': sale['items'][0]['id'], 'quantity': 1}],
        })
        assert ret.status_code == 201
        return_id = ret.get_json()['return']['id']

        approved = client.post(f'/api/returns/{return_id}/approve', headers=admin_headers)
        assert approved.get_json()['return']['status'] == 'approved'
        assert db.session.get(Product, product.id).quantity == 9

        credits = client.get(f'/api/clients/{customer.id}/credits', headers=salesperson_headers).get_json()
        assert credits['total_cents'] == 10000
        credit_id = credits['items'][0]['id']

        new_sale = _create_sale(client, salesperson_headers, product.id, client_id=customer.id).get_json()['sale']
        applied = client.post('/api/credits/apply', headers=salesperson_headers, json={
            'client_id': customer.id,
            'sale_id': new_sale['id'],
            'credit_id': credit_id,
            'amount_cents': 3000,
        })
        assert applied.status_code == 200
        body = applied.get_json()
        assert body['remainder']['amount_cents'] == 7000
        assert body['sale']['total_cents'] == 7000

    def test_approve_unknown_return(self, client, admin_headers):
        assert client.post('/api/returns/999/approve', headers=admin_headers).status_code == 404


class TestStockApi:
    def test_add_remove_and_movements(self, client, clerk_headers, product):
        added = client.post('/api/stock/add', headers=clerk_headers,
                            json={'product_id': product.id, 'quantity': 5, 'reason': 'delivery'})
        assert added.status_code == 201

        short = client.post('/api/stock/remove', headers=clerk_headers,
                            json={'product_id': product.id, 'quantity': 99, 'reason': 'loss'})
        assert short.status_code == 409

        movements = client.get(f'/api/products/{product.id}/movements', headers=clerk_headers).get_json()
        assert movements['pagination']['total'] == 2

        check = client.get(f'/api/products/{product.id}/ledger-check', headers=clerk_headers).get_json()
        assert check['consistent'] is True
        assert check['quantity'] == 15

    def test_product_id_required(self, client, clerk_headers):
        resp = client.post('/api/stock/add', headers=clerk_headers, json={'quantity': 1, 'reason': 'x'})
        assert resp.status_code == 400


class TestCountApi:
    def test_count_cycle(self, client, clerk_headers, product):
        started = client.post('/api/counts/start', headers=clerk_headers)
        assert started.status_code == 201
        count_id = started.get_json()['count']['id']

        assert client.post('/api/counts/start', headers=clerk_headers).status_code == 409

        recorded = client.post('/api/counts/items', headers=clerk_headers,
                               json={'items': [{'product_id': product.id, 'physical_quantity': 8}]})
        assert recorded.get_json()['count']['counted_items'] == 1

        adjusted = client.post('/api/counts/adjust', headers=clerk_headers,
                               json={'adjustments': [{'product_id': product.id, 'new_quantity': 8}]})
        assert adjusted.get_json()['count']['status'] == 'finished'
        assert db.session.get(Product, product.id).quantity == 8

        detail = client.get(f'/api/counts/{count_id}', headers=clerk_headers).get_json()['count']
        assert detail['items'][0]['difference'] == -2
        assert client.get('/api/counts/current', headers=clerk_headers).status_code == 404


class TestImportApi:
    def test_csv_upload(self, client, clerk_headers):
        csv_bytes = b"name,size,quantity,price\nSilk Blouse,P,4,89.90\n"
        resp = client.post(
            '/api/imports/products',
            headers=clerk_headers,
            data={'file': (io.BytesIO(csv_bytes), 'products.csv')},
            content_type='multipart/form-data',
        )
        assert resp.status_code == 200
        assert resp.get_json()['imported'] == 1
        assert db.session.query(Product).filter_by(name="Silk Blouse").one().price_cents == 8990

    def test_json_rows(self, client, salesperson_headers):
        resp = client.post('/api/imports/clients', headers=salesperson_headers,
                           json={'rows': [{'name': 'Bia', 'whatsapp': '+55 31 90000-0000'}]})
        assert resp.get_json()['imported'] == 1


class TestListingAndErrors:
    def test_negative_per_page_is_clamped(self, client, clerk_headers, product):
        for reason in ('delivery 1', 'delivery 2'):
            client.post('/api/stock/add', headers=clerk_headers,
                        json={'product_id': product.id, 'quantity': 1, 'reason': reason})

        resp = client.get('/api/stock/movements?per_page=-2', headers=clerk_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['count'] == 1
        assert body['pagination']['per_page'] == 1
        assert body['pagination']['total'] == 3
        assert body['pagination']['total_pages'] == 3

    def test_unexpected_read_failure_is_json_500(self, client, salesperson_headers, monkeypatch):
        def fail(**kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(sales_service, 'list_sales', fail)
        resp = client.get('/api/sales', headers=salesperson_headers)

        assert resp.status_code == 500
        assert resp.get_json() == {'message': 'Internal server error', 'error': 'unexpected'}

    def test_unknown_route_stays_404(self, client, salesperson_headers):
        assert client.get('/api/nowhere', headers=salesperson_headers).status_code == 404


class TestTemplateApi:
    def test_download_products_template(self, client, clerk_headers):
        resp = client.get('/api/imports/templates/products', headers=clerk_headers)
        assert resp.status_code == 200
        assert resp.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
        assert 'products_template.xlsx' in resp.headers['Content-Disposition']
        rows = import_service.parse_upload('products.xlsx', io.BytesIO(resp.data))
        assert list(rows[0].keys()) == ['name', 'size', 'quantity', 'price']

    def test_unknown_template_is_400(self, client, clerk_headers):
        assert client.get('/api/imports/templates/invoices', headers=clerk_headers).status_code == 400
