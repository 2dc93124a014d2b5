from bakery.models import Product
from extensions import db


def test_create_product_derives_syp_price(client, manager, auth_headers) -> None:
    response = client.post('/api/products/', headers=auth_headers(manager), json={
        'name': 'Croissant',
        'category': 'pastry',
        'price_eur': '1.50',
        'stock_quantity': 40,
        'minimum_stock': 5,
    })

    assert response.status_code == 201
    product = response.get_json()['product']
    assert product['price_eur'] == 1.5
    assert product['price_syp'] == 22500.0
    assert product['status'] == 'active'
    assert product['created_by'] == manager.id


def test_create_product_validation_errors(client, manager, auth_headers) -> None:
    response = client.post('/api/products/', headers=auth_headers(manager), json={'name': 'X'})
    assert response.status_code == 400
    assert 'price_eur' in response.get_json()['errors']

    response = client.post('/api/products/', headers=auth_headers(manager),
                           json={'name': 'Baguette', 'price_eur': 0, 'category': 'meat'})
    errors = response.get_json()['errors']
    assert response.status_code == 400
    assert 'price_eur' in errors
    assert 'category' in errors


def test_duplicate_barcode_is_rejected(client, manager, auth_headers) -> None:
    payload = {'name': 'Baguette', 'price_eur': 1, 'barcode': '6210001'}
    assert client.post('/api/products/', headers=auth_headers(manager), json=payload).status_code == 201

    payload['name'] = 'Other Baguette'
    response = client.post('/api/products/', headers=auth_headers(manager), json=payload)
    assert response.status_code == 400
    assert 'barcode' in response.get_json()['errors']


def test_list_filters_and_pagination(client, viewer, auth_headers, product) -> None:
    db.session.add(Product(name='Cheese Pastry', category='pastry', price_eur=3,
                           stock_quantity=2, minimum_stock=5))
    db.session.commit()
    headers = auth_headers(viewer)

    response = client.get('/api/products/?category=pastry', headers=headers)
    body = response.get_json()
    assert response.status_code == 200
    assert [p['name'] for p in body['products']] == ['Cheese Pastry']
    assert body['pagination']['total'] == 1

    low = client.get('/api/products/?low_stock=true', headers=headers).get_json()
    assert [p['name'] for p in low['products']] == ['Cheese Pastry']

    page = client.get('/api/products/?limit=1&page=2&sort_by=name&sort_order=asc', headers=headers).get_json()
    assert page['pagination']['pages'] == 2
    assert page['products'][0]['name'] == 'White Bread Loaf'

    assert client.get('/api/products/?limit=0', headers=headers).status_code == 400


def test_update_price_refreshes_syp(client, manager, auth_headers, product) -> None:
    response = client.put(f'/api/products/{product.id}', headers=auth_headers(manager),
                          json={'price_eur': 3})
    assert response.status_code == 200
    assert response.get_json()['product']['price_syp'] == 45000.0


def test_toggle_status_and_statistics(client, manager, auth_headers, product) -> None:
    headers = auth_headers(manager)
    response = client.patch(f'/api/products/{product.id}/toggle-status', headers=headers)
    assert response.get_json()['product']['status'] == 'inactive'

    stats = client.get('/api/products/statistics', headers=headers).get_json()
    assert stats['total_products'] == 1
    assert stats['by_status']['inactive'] == 1
    assert stats['stock_value_eur'] == 200.0


def test_search_returns_only_active(client, viewer, auth_headers, product) -> None:
    response = client.get('/api/products/search?q=bread', headers=auth_headers(viewer))
    assert [p['id'] for p in response.get_json()['products']] == [product.id]

    product.status = 'inactive'
    db.session.commit()
    response = client.get('/api/products/search?q=bread', headers=auth_headers(viewer))
    assert response.get_json()['products'] == []


def test_delete_product_in_use_is_discontinued(client, manager, auth_headers, product, make_order) -> None:
    make_order()
    response = client.delete(f'/api/products/{product.id}', headers=auth_headers(manager))

    assert response.status_code == 200
    assert response.get_json()['product']['status'] == 'discontinued'
    assert db.session.get(Product, product.id) is not None


def test_delete_unused_product(client, manager, auth_headers, product) -> None:
    response = client.delete(f'/api/products/{product.id}', headers=auth_headers(manager))
    assert response.status_code == 200
    assert db.session.get(Product, product.id) is None


def test_missing_product_is_404(client, viewer, auth_headers) -> None:
    assert client.get('/api/products/999', headers=auth_headers(viewer)).status_code == 404
