def test_health_reports_database(client) -> None:
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json() == {
        'status': 'healthy',
        'message': 'Bakery API is running',
        'database': 'connected',
    }


def test_index_lists_endpoints(client) -> None:
    body = client.get('/').get_json()

    assert body['version'] == '1.0.0'
    assert body['endpoints']['trips'] == '/api/distribution/trips/*'


def test_unknown_route_is_json_404(client) -> None:
    response = client.get('/api/nothing-here')

    assert response.status_code == 404
    assert response.get_json()['error'] == 'Resource not found'


def test_wrong_method_is_json_405(client) -> None:
    response = client.delete('/health')

    assert response.status_code == 405
    assert response.get_json()['error'] == 'Method not allowed'
