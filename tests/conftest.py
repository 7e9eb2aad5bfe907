import hashlib
import hmac
from datetime import datetime, timedelta

import pytest

from app import create_app
from auth_utils import create_token, hash_password
from models import db, CartItem, Category, Coupon, Product, User

RAZORPAY_KEY_ID = 'rzp_test_key'
RAZORPAY_SECRET = 'rzp_test_secret'
PASSWORD = 'secret123'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'JWT_SECRET': 'test-jwt-secret',
        'BCRYPT_LOG_ROUNDS': 4,
        'MAIL_ENABLED': False,
        'RAZORPAY_KEY_ID': RAZORPAY_KEY_ID,
        'RAZORPAY_KEY_SECRET': RAZORPAY_SECRET,
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'REPORT_FOLDER': str(tmp_path / 'reports'),
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(app, email, role='customer', verified=True, name='Test User'):
    with app.app_context():
        user = User(email=email, name=name, password_hash=hash_password(PASSWORD),
                    role=role, is_verified=verified)
        db.session.add(user)
        db.session.commit()
        return user.id


def headers_for(app, user_id):
    with app.app_context():
        token = create_token(db.session.get(User, user_id))
    return {'Authorization': f'Bearer {token}'}


def sign(gateway_order_id, payment_id, secret=RAZORPAY_SECRET):
    message = f'{gateway_order_id}|{payment_id}'.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def customer(app):
    return make_user(app, 'customer@example.com', name='Asha')


@pytest.fixture
def other_customer(app):
    return make_user(app, 'other@example.com', name='Ravi')


@pytest.fixture
def admin(app):
    return make_user(app, 'admin@example.com', role='admin', name='Admin User')


@pytest.fixture
def customer_headers(app, customer):
    return headers_for(app, customer)


@pytest.fixture
def other_headers(app, other_customer):
    return headers_for(app, other_customer)


@pytest.fixture
def admin_headers(app, admin):
    return headers_for(app, admin)


@pytest.fixture
def catalog(app):
    """A small category tree with four products; returns their ids by key."""
    with app.app_context():
        skincare = Category(name='Skincare', description='Skin care')
        makeup = Category(name='Makeup', description='Makeup')
        db.session.add_all([skincare, makeup])
        db.session.flush()
        serums = Category(name='Serums', parent_id=skincare.id)
        db.session.add(serums)
        db.session.flush()

        now = datetime.utcnow()
        products = {
            'cream': Product(name='Saffron Face Cream', description='Brightening cream', price=600,
                             stock_quantity=10, category_id=skincare.id, category='Skincare',
                             product_type='Cream', skin_type='Dry', created_at=now - timedelta(days=3)),
            'serum': Product(name='Vitamin C Serum', description='Glow serum', price=900,
                             stock_quantity=5, category_id=serums.id, category='Serums',
                             product_type='Serum', skin_type='Oily', ingredients='Kumkumadi oil',
                             created_at=now - timedelta(days=2)),
            'lipstick': Product(name='Rose Lipstick', description='Matte lipstick', price=450,
                                stock_quantity=20, category_id=makeup.id, category='Makeup',
                                product_type='Lipstick', created_at=now - timedelta(days=1)),
            'cleanser': Product(name='Neem Cleanser', description='Daily face wash', price=100,
                                stock_quantity=50, category_id=skincare.id, category='Skincare',
                                product_type='Cleanser', skin_type='Oily', created_at=now),
        }
        products['cream'].set_concerns(['Dryness', 'Dullness'])
        products['serum'].set_concerns(['Pigmentation', 'Dullness'])
        products['cleanser'].set_concerns(['Acne'])
        db.session.add_all(products.values())
        db.session.commit()

        ids = {key: product.id for key, product in products.items()}
        ids.update(skincare=skincare.id, makeup=makeup.id, serums=serums.id)
        return ids


def make_coupon(app, code='SAVE10', product_ids=(), **fields):
    values = {
        'discount_type': 'percentage',
        'discount_value': 10,
        'min_purchase_amount': 50,
        'start_date': datetime.utcnow() - timedelta(days=1),
        'end_date': datetime.utcnow() + timedelta(days=30),
    }
    values.update(fields)
    with app.app_context():
        coupon = Coupon(code=code, **values)
        coupon.products = [db.session.get(Product, pid) for pid in product_ids]
        db.session.add(coupon)
        db.session.commit()
        return coupon.id


def add_to_cart(app, user_id, product_id, quantity=1, discount=0):
    with app.app_context():
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity,
                        discount_amount=discount)
        db.session.add(item)
        db.session.commit()
        return item.id


SHIPPING = {
    'full_name': 'Asha Kumar',
    'phone_number': '9876543210',
    'address_line1': '12 MG Road',
    'city': 'Bengaluru',
    'state': 'Karnataka',
    'postal_code': '560001',
}
