import io

from conftest import SHIPPING
from models import db, Address, User


def _add_address(client, headers, **fields):
    resp = client.post('/api/addresses', json=dict(SHIPPING, **fields), headers=headers)
    assert resp.status_code == 200
    return resp.get_json()


class TestAddresses:

    def test_first_address_becomes_default(self, client, customer_headers):
        first = _add_address(client, customer_headers)
        assert first['is_default'] is True
        assert first['country'] == 'India'
        assert first['address_type'] == 'Home'

        second = _add_address(client, customer_headers, city='Chennai')
        assert second['is_default'] is False

    def test_new_default_unsets_the_others(self, app, client, customer, customer_headers):
        first = _add_address(client, customer_headers)
        second = _add_address(client, customer_headers, city='Chennai', is_default=True)
        assert second['is_default'] is True

        listed = client.get('/api/addresses', headers=customer_headers).get_json()
        assert [a['id'] for a in listed] == [second['id'], first['id']]
        with app.app_context():
            assert Address.query.filter_by(user_id=customer, is_default=True).count() == 1

    def test_set_default(self, app, client, customer, customer_headers):
        first = _add_address(client, customer_headers)
        second = _add_address(client, customer_headers, city='Chennai')

        resp = client.put(f"/api/addresses/{second['id']}/default", headers=customer_headers)
        assert resp.get_json()['is_default'] is True
        with app.app_context():
            assert db.session.get(Address, first['id']).is_default is False

    def test_update_and_delete(self, app, client, customer_headers):
        first = _add_address(client, customer_headers)
        second = _add_address(client, customer_headers, city='Chennai')

        resp = client.put(f"/api/addresses/{second['id']}", json={'city': 'Madurai', 'address_type': 'Work'},
                          headers=customer_headers)
        assert resp.get_json()['city'] == 'Madurai'
        assert resp.get_json()['address_type'] == 'Work'

        assert client.delete(f"/api/addresses/{first['id']}", headers=customer_headers).status_code == 200
        remaining = client.get('/api/addresses', headers=customer_headers).get_json()
        assert [(a['id'], a['is_default']) for a in remaining] == [(second['id'], True)]

    def test_validation_and_ownership(self, client, customer_headers, other_headers):
        resp = client.post('/api/addresses', json={'full_name': 'X'}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Missing required fields'

        address = _add_address(client, customer_headers)
        assert client.put(f"/api/addresses/{address['id']}", json={'city': 'X'},
                          headers=other_headers).status_code == 404
        assert client.delete(f"/api/addresses/{address['id']}", headers=other_headers).status_code == 404
        assert client.put(f"/api/addresses/{address['id']}/default", headers=other_headers).status_code == 404


class TestUsers:

    def test_profile_update(self, app, client, customer, customer_headers):
        resp = client.put('/api/users/profile', json={'name': 'Asha K', 'phone': '9876543210'},
                          headers=customer_headers)
        assert resp.status_code == 200
        assert resp.get_json()['phone'] == '9876543210'
        assert client.get('/api/users/profile', headers=customer_headers).get_json()['name'] == 'Asha K'

    def test_profile_validation(self, client, customer_headers, other_customer):
        resp = client.put('/api/users/profile', json={'phone': '12345'}, headers=customer_headers)
        assert resp.get_json() == {'error': 'Please enter a valid 10-digit phone number'}
        resp = client.put('/api/users/profile', json={'email': 'other@example.com'}, headers=customer_headers)
        assert resp.get_json() == {'error': 'Email already in use'}

    def test_dashboard(self, app, client, catalog, customer, customer_headers):
        client.post('/api/wishlist', json={'product_id': catalog['serum']}, headers=customer_headers)
        client.post('/api/orders', headers=customer_headers, json={
            'payment_method': 'cod', 'shipping_address': SHIPPING,
            'items': [{'product_id': catalog['cream'], 'quantity': 1}],
        })
        client.post('/api/cart', json={'product_id': catalog['lipstick']}, headers=customer_headers)

        body = client.get('/api/users/dashboard', headers=customer_headers).get_json()
        assert body['profile']['email'] == 'customer@example.com'
        assert body['stats'] == {'totalOrders': 1, 'totalSpent': 600, 'wishlistCount': 1, 'cartCount': 1}
        assert len(body['recentOrders']) == 1
        assert [p['name'] for p in body['recentlyViewed']] == ['Saffron Face Cream']

    def test_profile_photo(self, app, client, customer, customer_headers):
        resp = client.post('/api/users/profile/photo', headers=customer_headers,
                           data={'photo': (io.BytesIO(b'jpeg bytes'), 'me.jpg')},
                           content_type='multipart/form-data')
        assert resp.status_code == 200
        photo_url = resp.get_json()['photo_url']
        assert photo_url.startswith('/uploads/profile-photos/')
        assert client.get(photo_url).data == b'jpeg bytes'
        with app.app_context():
            assert db.session.get(User, customer).photo_url == photo_url

        resp = client.post('/api/users/profile/photo', headers=customer_headers,
                           data={'photo': (io.BytesIO(b'x'), 'script.exe')},
                           content_type='multipart/form-data')
        assert resp.get_json() == {'error': 'Only image files are allowed!'}
        resp = client.post('/api/users/profile/photo', headers=customer_headers, data={},
                           content_type='multipart/form-data')
        assert resp.get_json() == {'error': 'No file uploaded'}


class TestBrandReviews:

    def test_add_and_list(self, client, customer_headers, other_headers):
        resp = client.post('/api/brand-reviews', json={'rating': 5, 'comment': 'Great oils'},
                           headers=customer_headers)
        assert resp.status_code == 201
        client.post('/api/brand-reviews', json={'rating': 4}, headers=other_headers)

        body = client.get('/api/brand-reviews').get_json()
        assert body['review_count'] == 2
        assert body['average_rating'] == 4.5
        assert {r['user_name'] for r in body['reviews']} == {'Asha', 'Ravi'}

    def test_one_review_per_user(self, client, customer_headers):
        client.post('/api/brand-reviews', json={'rating': 5}, headers=customer_headers)
        resp = client.post('/api/brand-reviews', json={'rating': 3}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'You have already submitted a brand review'

    def test_update_and_delete_own(self, client, customer_headers, other_headers):
        review = client.post('/api/brand-reviews', json={'rating': 2}, headers=customer_headers).get_json()['review']

        assert client.put(f"/api/brand-reviews/{review['id']}", json={'rating': 5},
                          headers=other_headers).status_code == 404
        resp = client.put(f"/api/brand-reviews/{review['id']}", json={'rating': 5, 'comment': 'Better now'},
                          headers=customer_headers)
        assert resp.get_json()['rating'] == 5

        assert client.delete(f"/api/brand-reviews/{review['id']}", headers=other_headers).status_code == 404
        assert client.delete(f"/api/brand-reviews/{review['id']}", headers=customer_headers).status_code == 200
        assert client.get('/api/brand-reviews').get_json()['review_count'] == 0

    def test_rating_range(self, client, customer_headers):
        resp = client.post('/api/brand-reviews', json={'rating': 0}, headers=customer_headers)
        assert resp.status_code == 400
