from jose import jwt

import email_utils
from conftest import PASSWORD, make_user
from models import db, User


def _stored_otp(app, email):
    return app.extensions['otp_store'].get(email)['otp']


def test_signup_flow(app, client):
    resp = client.post('/api/auth/request-signup-otp', json={'email': 'new@example.com'})
    assert resp.status_code == 200
    otp = _stored_otp(app, 'new@example.com')

    resp = client.post('/api/auth/verify-signup-otp', json={
        'email': 'new@example.com', 'otp': otp, 'name': 'Meera', 'password': 'pw123456',
    })
    assert resp.status_code == 200
    claims = jwt.decode(resp.get_json()['token'], 'test-jwt-secret', algorithms=['HS256'])
    assert claims['email'] == 'new@example.com'
    assert claims['role'] == 'customer'
    assert claims['name'] == 'Meera'
    assert 'new@example.com' not in app.extensions['otp_store']

    with app.app_context():
        user = User.query.filter_by(email='new@example.com').one()
        assert user.is_verified
        assert user.password_hash != 'pw123456'


def test_request_otp_validation(client, customer):
    assert client.post('/api/auth/request-signup-otp', json={}).get_json() == {'error': 'Email is required'}
    resp = client.post('/api/auth/request-signup-otp', json={'email': 'not-an-email'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Invalid email format'
    resp = client.post('/api/auth/request-signup-otp', json={'email': 'customer@example.com'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'User already exists'


def test_request_otp_mail_failure_clears_code(app, client, monkeypatch):
    monkeypatch.setattr(email_utils, 'send_otp_email', lambda email, otp: False)
    resp = client.post('/api/auth/request-signup-otp', json={'email': 'new@example.com'})
    assert resp.status_code == 500
    assert resp.get_json()['error'] == 'Failed to send verification code'
    assert 'new@example.com' not in app.extensions['otp_store']


def test_verify_signup_wrong_code(app, client):
    client.post('/api/auth/request-signup-otp', json={'email': 'new@example.com'})
    otp = _stored_otp(app, 'new@example.com')
    payload = {'email': 'new@example.com', 'otp': 'x' + otp, 'name': 'Meera', 'password': 'pw'}

    assert client.post('/api/auth/verify-signup-otp', json=payload).get_json()['error'] == 'Invalid verification code'
    client.post('/api/auth/verify-signup-otp', json=payload)
    resp = client.post('/api/auth/verify-signup-otp', json=payload)
    assert resp.status_code == 400
    assert 'Too many failed attempts' in resp.get_json()['error']

    payload['otp'] = otp
    resp = client.post('/api/auth/verify-signup-otp', json=payload)
    assert resp.status_code == 400
    with app.app_context():
        assert User.query.filter_by(email='new@example.com').first() is None


def test_verify_signup_missing_fields(client):
    resp = client.post('/api/auth/verify-signup-otp', json={'email': 'x@example.com'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'All fields are required'


def test_login(client, customer):
    resp = client.post('/api/auth/login', json={'email': 'customer@example.com', 'password': PASSWORD})
    assert resp.status_code == 200
    token = resp.get_json()['token']

    me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    assert me.get_json()['email'] == 'customer@example.com'


def test_login_invalid_credentials(client, customer):
    for payload in ({'email': 'customer@example.com', 'password': 'wrong'},
                    {'email': 'ghost@example.com', 'password': PASSWORD}):
        resp = client.post('/api/auth/login', json=payload)
        assert resp.status_code == 400
        assert resp.get_json() == {'error': 'Invalid credentials'}


def test_login_unverified_customer_needs_verification(app, client):
    make_user(app, 'pending@example.com', verified=False)
    resp = client.post('/api/auth/login', json={'email': 'pending@example.com', 'password': PASSWORD})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['needsVerification'] is True
    assert 'token' not in body

    otp = _stored_otp(app, 'pending@example.com')
    resp = client.post('/api/auth/verify-email', json={'email': 'pending@example.com', 'otp': otp})
    assert resp.status_code == 200
    assert resp.get_json()['token']
    with app.app_context():
        assert User.query.filter_by(email='pending@example.com').one().is_verified

    resp = client.post('/api/auth/login', json={'email': 'pending@example.com', 'password': PASSWORD})
    assert resp.status_code == 200


def test_unverified_admin_bypasses_verification(app, client):
    make_user(app, 'boss@example.com', role='admin', verified=False)
    resp = client.post('/api/auth/login', json={'email': 'boss@example.com', 'password': PASSWORD})
    assert resp.status_code == 200
    assert 'boss@example.com' not in app.extensions['otp_store']


def test_resend_otp(app, client, customer):
    resp = client.post('/api/auth/resend-otp', json={'email': 'customer@example.com'})
    assert resp.status_code == 200
    assert 'customer@example.com' in app.extensions['otp_store']
    resp = client.post('/api/auth/resend-otp', json={'email': 'ghost@example.com'})
    assert resp.status_code == 400


def test_missing_and_invalid_tokens(client, customer):
    resp = client.get('/api/auth/me')
    assert resp.status_code == 401
    assert resp.get_json() == {'error': 'No token provided'}

    resp = client.get('/api/auth/me', headers={'Authorization': 'Bearer not.a.token'})
    assert resp.status_code == 401
    assert resp.get_json() == {'error': 'Invalid token'}


def test_token_of_deleted_user_is_rejected(app, client, customer, customer_headers):
    with app.app_context():
        db.session.delete(db.session.get(User, customer))
        db.session.commit()
    assert client.get('/api/auth/me', headers=customer_headers).status_code == 401


def test_admin_routes_need_admin_role(client, customer_headers, admin_headers):
    resp = client.get('/api/admin/stats', headers=customer_headers)
    assert resp.status_code == 403
    assert resp.get_json() == {'error': 'Admin access required'}
    assert client.get('/api/admin/stats', headers=admin_headers).status_code == 200
