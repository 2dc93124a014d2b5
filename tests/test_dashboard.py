import pytest


@pytest.fixture
def trading_day(client, manager, distributor, auth_headers, store, make_order):
    """One delivered and paid 20 EUR order plus one 10 EUR draft"""
    headers = auth_headers(manager)
    delivered = make_order()
    make_order(quantity=5)

    client.post(f"/api/simple-distribution/orders/{delivered['id']}/assign", headers=headers,
                json={'distributor_id': distributor.id})
    for status in ('in_progress', 'delivered'):
        client.patch(f"/api/orders/{delivered['id']}/status", headers=headers, json={'status': status})
    client.post('/api/payments/', headers=headers, json={
        'store_id': store.id, 'order_id': delivered['id'], 'amount_eur': 20,
        'status': 'completed', 'payment_method': 'cash',
    })
    return delivered


def test_stats_in_eur(client, viewer, auth_headers, trading_day, store) -> None:
    response = client.get('/api/dashboard/stats', headers=auth_headers(viewer))

    body = response.get_json()
    assert response.status_code == 200
    assert body['currency'] == 'EUR'

    overview = body['daily_overview']
    assert overview['total_orders'] == 2
    assert overview['delivered_orders'] == 1
    assert overview['pending_orders'] == 1
    assert overview['total_sales'] == 20.0
    assert overview['pending_sales'] == 10.0
    assert overview['active_distributors'] == 1
    assert overview['total_payments'] == 20.0
    assert overview['payment_transactions'] == 1

    sales = body['sales_metrics']
    assert sales['trends'][0]['total_sales'] == 20.0
    assert sales['category_breakdown'] == [
        {'category': 'bread', 'orders_count': 2, 'total_quantity': 15, 'total_amount': 30.0}
    ]

    assert body['distribution_metrics']['delivery_success_rate'] == 100.0
    assert body['payment_metrics']['by_method'] == {'cash': {'count': 1, 'amount': 20.0}}
    assert body['payment_metrics']['collection_rate'] == 100.0
    assert body['top_performers']['top_stores'][0]['store_name'] == store.name
    assert body['top_performers']['top_products'][0]['total_quantity'] == 15
    assert body['system_health']['database'] == 'connected'
    assert body['system_health']['orders'] == 2


def test_stats_in_syp(client, viewer, auth_headers, trading_day) -> None:
    body = client.get('/api/dashboard/stats?currency=syp', headers=auth_headers(viewer)).get_json()

    assert body['currency'] == 'SYP'
    assert body['daily_overview']['total_sales'] == 300000.0
    assert body['daily_overview']['total_payments'] == 300000.0


def test_period_outside_activity_is_empty(client, viewer, auth_headers, trading_day) -> None:
    body = client.get('/api/dashboard/overview?date_from=2020-01-01&date_to=2020-01-31',
                      headers=auth_headers(viewer)).get_json()

    assert body['period'] == {'date_from': '2020-01-01', 'date_to': '2020-01-31'}
    assert body['daily_overview']['total_orders'] == 0
    assert body['daily_overview']['total_sales'] == 0.0


def test_bad_query_parameters(client, viewer, auth_headers) -> None:
    headers = auth_headers(viewer)
    assert client.get('/api/dashboard/stats?currency=USD', headers=headers).status_code == 400
    assert client.get('/api/dashboard/stats?date_from=2024-02-01&date_to=2024-01-01',
                      headers=headers).status_code == 400
    assert client.get('/api/dashboard/overview?date_to=yesterday', headers=headers).status_code == 400


def test_requires_login(client) -> None:
    assert client.get('/api/dashboard/stats').status_code == 401
