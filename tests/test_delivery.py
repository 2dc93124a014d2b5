"""
Delivery schedules: booking windows, conflicts, rescheduling, live
tracking and the store confirmation link.
"""
from datetime import date, timedelta

import pytest

from extensions import db, mail
from bakery.models import DeliverySchedule, DeliveryTracking, Order

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def assigned_order(client, manager, distributor, auth_headers, make_order):
    order = make_order()
    response = client.post(f"/api/simple-distribution/orders/{order['id']}/assign",
                           headers=auth_headers(manager), json={'distributor_id': distributor.id})
    assert response.status_code == 200
    return response.get_json()['order']


@pytest.fixture
def schedule_for(client, manager, auth_headers):
    def _schedule(order, **fields):
        payload = {'order_id': order['id'], 'scheduled_date': TOMORROW,
                   'scheduled_time_start': '10:00', 'scheduled_time_end': '11:00'}
        payload.update(fields)
        return client.post('/api/delivery/schedules', headers=auth_headers(manager), json=payload)
    return _schedule


@pytest.fixture
def schedule(schedule_for, assigned_order):
    response = schedule_for(assigned_order)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['schedule']


class TestCreateSchedule:
    def test_defaults_from_order_and_store(self, schedule, distributor, store) -> None:
        assert schedule['status'] == 'scheduled'
        assert schedule['distributor_id'] == distributor.id
        assert schedule['time_slot'] == 'morning'
        assert schedule['contact_person'] == store.owner_name
        assert schedule['contact_phone'] == store.phone
        assert schedule['delivery_address'] == store.address
        assert schedule['max_reschedules'] == 3
        assert schedule['confirmation_token']
        assert DeliveryTracking.query.filter_by(schedule_id=schedule['id']).count() == 1

    def test_named_time_slot_is_custom(self, schedule_for, assigned_order) -> None:
        body = schedule_for(assigned_order, scheduled_time_start='18:00', scheduled_time_end='19:00',
                            time_slot='evening').get_json()
        assert body['schedule']['time_slot'] == 'custom'

    def test_afternoon_slot_from_start_time(self, schedule_for, assigned_order) -> None:
        body = schedule_for(assigned_order, scheduled_time_start='14:30', scheduled_time_end=None).get_json()
        assert body['schedule']['time_slot'] == 'afternoon'

    def test_overlapping_window_is_409(self, schedule, schedule_for, assigned_order) -> None:
        response = schedule_for(assigned_order, scheduled_time_start='10:30', scheduled_time_end='11:30')

        assert response.status_code == 409
        assert [s['id'] for s in response.get_json()['conflicting_schedules']] == [schedule['id']]

        assert schedule_for(assigned_order, scheduled_time_start='11:00', scheduled_time_end='12:00').status_code == 201

    def test_other_distributor_has_no_conflict(self, schedule, schedule_for, assigned_order, make_user) -> None:
        other = make_user('other', 'distributor')
        assert schedule_for(assigned_order, distributor_id=other.id).status_code == 201

    def test_validation(self, client, schedule_for, assigned_order, make_order, manager, auth_headers) -> None:
        response = schedule_for(assigned_order, scheduled_time_start='11:00', scheduled_time_end='10:00')
        assert 'scheduled_time_end' in response.get_json()['errors']

        response = schedule_for(assigned_order, scheduled_date='tomorrow')
        assert response.status_code == 400

        assert schedule_for({'id': 999}).status_code == 404

        cancelled = make_order()
        client.patch(f"/api/orders/{cancelled['id']}/status", headers=auth_headers(manager),
                     json={'status': 'cancelled'})
        assert schedule_for(cancelled).status_code == 400

    def test_confirmation_email_is_sent(self, schedule_for, assigned_order) -> None:
        with mail.record_messages() as outbox:
            response = schedule_for(assigned_order, confirmation_required=True, contact_email='orders@salam.test')

        assert response.status_code == 201
        assert len(outbox) == 1
        assert outbox[0].recipients == ['orders@salam.test']
        assert response.get_json()['schedule']['confirmation_token'] in outbox[0].body


class TestStatusTracking:
    def test_delivery_carries_order_along(self, client, distributor, auth_headers, schedule, assigned_order) -> None:
        headers = auth_headers(distributor)

        response = client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=headers,
                              json={'status': 'in_progress'})
        assert response.status_code == 200
        assert db.session.get(Order, assigned_order['id']).status.value == 'in_progress'

        live = client.get('/api/delivery/tracking/live', headers=headers).get_json()
        assert live['count'] == 0

        response = client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=headers,
                              json={'status': 'delivered', 'delivery_rating': 5, 'delivery_feedback': 'Fresh'})
        body = response.get_json()['schedule']
        assert response.status_code == 200
        assert body['status'] == 'delivered'
        assert body['delivery_rating'] == 5
        assert body['completed_at'] is not None
        assert len(body['tracking']) == 3
        assert db.session.get(Order, assigned_order['id']).status.value == 'delivered'

    def test_invalid_transition_and_rating(self, client, distributor, auth_headers, schedule) -> None:
        headers = auth_headers(distributor)
        response = client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=headers,
                              json={'status': 'delivered'})
        assert response.status_code == 400

        response = client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=headers,
                              json={'status': 'in_progress', 'delivery_rating': 9})
        assert 'delivery_rating' in response.get_json()['errors']

    def test_location_updates(self, client, distributor, auth_headers, schedule) -> None:
        headers = auth_headers(distributor)
        response = client.post(f"/api/delivery/tracking/{schedule['id']}/location", headers=headers,
                               json={'latitude': 33.51, 'longitude': 36.29, 'location_description': 'Umayyad Sq'})

        tracking = response.get_json()['tracking']
        assert response.status_code == 201
        assert tracking['location']['google_maps_url'].startswith('https://www.google.com/maps?q=')
        assert tracking['status'] == 'scheduled'

        response = client.post(f"/api/delivery/tracking/{schedule['id']}/location", headers=headers,
                               json={'latitude': 200, 'longitude': 36.29})
        assert response.status_code == 400

    def test_other_distributor_is_forbidden(self, client, make_user, auth_headers, schedule) -> None:
        stranger = auth_headers(make_user('stranger', 'distributor'))
        assert client.get(f"/api/delivery/schedules/{schedule['id']}", headers=stranger).status_code == 403
        assert client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=stranger,
                          json={'status': 'in_progress'}).status_code == 403


class TestReschedule:
    def test_reschedule_creates_follow_up(self, client, manager, auth_headers, schedule) -> None:
        response = client.post(f"/api/delivery/schedules/{schedule['id']}/reschedule", headers=auth_headers(manager),
                               json={'scheduled_date': TOMORROW, 'scheduled_time_start': '15:00',
                                     'reason': 'Store closed in the morning'})

        body = response.get_json()
        assert response.status_code == 201
        assert body['schedule']['reschedule_count'] == 1
        assert body['schedule']['rescheduled_from'] == schedule['id']
        assert body['schedule']['time_slot'] == 'afternoon'
        assert body['previous_schedule']['status'] == 'rescheduled'

    def test_reason_required(self, client, manager, auth_headers, schedule) -> None:
        response = client.post(f"/api/delivery/schedules/{schedule['id']}/reschedule", headers=auth_headers(manager),
                               json={'scheduled_date': TOMORROW, 'scheduled_time_start': '15:00'})
        assert response.status_code == 400

    def test_limit_is_enforced(self, client, manager, auth_headers, schedule) -> None:
        current = schedule['id']
        for hour in (12, 13, 14):
            response = client.post(f'/api/delivery/schedules/{current}/reschedule', headers=auth_headers(manager),
                                   json={'scheduled_date': TOMORROW, 'scheduled_time_start': f'{hour}:00',
                                         'reason': 'Traffic'})
            assert response.status_code == 201
            current = response.get_json()['schedule']['id']

        response = client.post(f'/api/delivery/schedules/{current}/reschedule', headers=auth_headers(manager),
                               json={'scheduled_date': TOMORROW, 'scheduled_time_start': '16:00', 'reason': 'Again'})
        assert response.status_code == 400
        assert 'Maximum reschedules' in response.get_json()['error']


class TestUpdateSchedule:
    def _put(self, client, headers, schedule_id, **fields):
        return client.put(f'/api/delivery/schedules/{schedule_id}', headers=headers, json=fields)

    def test_move_within_the_day(self, client, manager, auth_headers, schedule) -> None:
        headers = auth_headers(manager)

        response = self._put(client, headers, schedule['id'], scheduled_time_start='10:30',
                             scheduled_time_end='11:30')
        assert response.status_code == 200

        response = self._put(client, headers, schedule['id'], scheduled_time_start='14:00',
                             scheduled_time_end='15:00', delivery_instructions='Back door')
        body = response.get_json()['schedule']
        assert response.status_code == 200
        assert body['scheduled_time_start'].startswith('14:00')
        assert body['time_slot'] == 'afternoon'
        assert body['delivery_instructions'] == 'Back door'

    def test_move_into_another_window_is_409(self, client, manager, auth_headers, schedule,
                                             schedule_for, assigned_order) -> None:
        later = schedule_for(assigned_order, scheduled_time_start='13:00', scheduled_time_end='14:00')
        later_id = later.get_json()['schedule']['id']

        response = self._put(client, auth_headers(manager), later_id, scheduled_time_start='10:30',
                             scheduled_time_end='11:30')

        assert response.status_code == 409
        assert [s['id'] for s in response.get_json()['conflicting_schedules']] == [schedule['id']]

    def test_end_before_saved_start(self, client, manager, auth_headers, schedule) -> None:
        response = self._put(client, auth_headers(manager), schedule['id'], scheduled_time_end='09:00')

        assert response.status_code == 400
        assert 'scheduled_time_end' in response.get_json()['errors']

    def test_empty_date_or_start_is_rejected(self, client, manager, auth_headers, schedule) -> None:
        headers = auth_headers(manager)

        response = self._put(client, headers, schedule['id'], scheduled_date='')
        assert response.status_code == 400
        assert 'scheduled_date' in response.get_json()['errors']

        response = self._put(client, headers, schedule['id'], scheduled_time_start='')
        assert response.status_code == 400
        assert 'scheduled_time_start' in response.get_json()['errors']

        response = self._put(client, headers, schedule['id'], scheduled_time_start=None)
        assert response.status_code == 400

    def test_open_ended_window(self, client, manager, auth_headers, schedule) -> None:
        response = self._put(client, auth_headers(manager), schedule['id'], scheduled_time_end=None)

        assert response.status_code == 200
        assert response.get_json()['schedule']['scheduled_time_end'] is None

    def test_delivered_schedule_is_locked(self, client, manager, distributor, auth_headers, schedule) -> None:
        driver = auth_headers(distributor)
        for status in ('in_progress', 'delivered'):
            client.put(f"/api/delivery/tracking/{schedule['id']}/status", headers=driver, json={'status': status})

        response = self._put(client, auth_headers(manager), schedule['id'], delivery_instructions='Late change')

        assert response.status_code == 400
        assert 'delivered' in response.get_json()['error']


class TestConfirmation:
    def test_public_confirmation(self, client, schedule) -> None:
        token = schedule['confirmation_token']

        response = client.post(f'/api/delivery/schedules/confirm/{token}', json={'confirmed_by': 'Khaled'})
        assert response.status_code == 200
        assert response.get_json()['schedule']['status'] == 'confirmed'
        assert response.get_json()['schedule']['confirmed_by'] == 'Khaled'

        assert client.post(f'/api/delivery/schedules/confirm/{token}').status_code == 400
        assert client.post('/api/delivery/schedules/confirm/not-a-token').status_code == 404


class TestPlanningAndReports:
    def test_availability(self, client, viewer, distributor, auth_headers, schedule) -> None:
        headers = auth_headers(viewer)
        busy = client.get(f'/api/delivery/schedules/availability?date={TOMORROW}&time_start=10:30'
                          f'&distributor_id={distributor.id}', headers=headers).get_json()
        assert busy['available'] is False

        free = client.get(f'/api/delivery/schedules/availability?date={TOMORROW}&time_start=10:30'
                          f"&distributor_id={distributor.id}&exclude_id={schedule['id']}", headers=headers).get_json()
        assert free['available'] is True

        assert client.get('/api/delivery/schedules/availability?date=' + TOMORROW,
                          headers=headers).status_code == 400

    def test_capacity(self, client, viewer, auth_headers, schedule) -> None:
        capacity = client.get(f'/api/delivery/capacity?date={TOMORROW}', headers=auth_headers(viewer)).get_json()

        assert capacity['total_capacity'] == 10
        assert capacity['used_capacity'] == 1
        assert capacity['available_capacity'] == 9
        assert capacity['by_time_slot']['morning'] == 1
        assert capacity['suggestions'][0]['available'] == 9

    def test_list_search_and_export(self, client, manager, auth_headers, schedule, store) -> None:
        headers = auth_headers(manager)

        listed = client.get('/api/delivery/schedules?search=salam', headers=headers).get_json()
        assert [s['id'] for s in listed['schedules']] == [schedule['id']]
        assert client.get('/api/delivery/schedules?status=lost', headers=headers).status_code == 400

        export = client.get('/api/delivery/schedules/export', headers=headers)
        rows = export.get_data(as_text=True).splitlines()
        assert rows[0].startswith('id,order_number,store_name')
        assert store.name in rows[1]

    def test_bulk_update_and_analytics(self, client, manager, auth_headers, schedule) -> None:
        headers = auth_headers(manager)
        response = client.post('/api/delivery/schedules/bulk-update', headers=headers,
                               json={'schedule_ids': [schedule['id'], 999], 'status': 'cancelled'})

        body = response.get_json()
        assert body['updated'] == [schedule['id']]
        assert body['failed'][0]['id'] == 999

        analytics = client.get('/api/delivery/schedules/analytics', headers=headers).get_json()
        assert analytics['total_schedules'] == 1
        assert analytics['by_status']['cancelled'] == 1
        assert analytics['completion_rate'] == 0

    def test_delete(self, client, manager, auth_headers, schedule) -> None:
        response = client.delete(f"/api/delivery/schedules/{schedule['id']}", headers=auth_headers(manager))
        assert response.status_code == 200
        assert db.session.get(DeliverySchedule, schedule['id']) is None
        assert DeliveryTracking.query.count() == 0
