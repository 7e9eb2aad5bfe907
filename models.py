from contextlib import contextmanager
from datetime import datetime

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _iso(value):
    return value.isoformat() if value else None


@contextmanager
def transaction():
    """Commit everything written inside the block, or roll all of it back."""
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


coupon_products = db.Table(
    'coupon_products',
    db.Column('coupon_id', db.Integer, db.ForeignKey('coupons.id', ondelete='CASCADE'), primary_key=True),
    db.Column('product_id', db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    name = db.Column(db.String(120))
    phone = db.Column(db.String(20))
    photo_url = db.Column(db.String(500))
    role = db.Column(db.String(20), default='customer', nullable=False)
    is_verified = db.Column(db.Boolean, default=False)
    verification_token = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # relationships
    orders = db.relationship('Order', backref='customer', lazy=True)
    cart_items = db.relationship('CartItem', backref='user', lazy=True, cascade='all, delete-orphan')
    wishlist_items = db.relationship('WishlistItem', backref='user', lazy=True, cascade='all, delete-orphan')
    addresses = db.relationship('Address', backref='user', lazy=True, cascade='all, delete-orphan')
    reviews = db.relationship('Review', backref='user', lazy=True)

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'photo_url': self.photo_url,
            'role': self.role,
            'is_verified': self.is_verified,
            'created_at': _iso(self.created_at),
        }


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    parent_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    parent = db.relationship('Category', remote_side=[id], backref='children')
    products = db.relationship('Product', backref='category_ref', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'image_url': self.image_url,
            'parent_id': self.parent_id,
            'parent_name': self.parent.name if self.parent else None,
            'created_at': _iso(self.created_at),
        }


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default='')
    price = db.Column(db.Float, nullable=False)
    stock_quantity = db.Column(db.Integer, default=0)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'))
    category = db.Column(db.String(100))
    product_type = db.Column(db.String(50))
    skin_type = db.Column(db.String(50))
    offer_percentage = db.Column(db.Integer, default=0)
    usage_instructions = db.Column(db.Text)
    size = db.Column(db.String(50))
    benefits = db.Column(db.Text)
    ingredients = db.Column(db.Text)
    product_details = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    image_url2 = db.Column(db.String(500))
    image_url3 = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # relationships
    concerns = db.relationship('ProductConcern', backref='product', lazy=True, cascade='all, delete-orphan')
    cart_items = db.relationship('CartItem', backref='product', lazy=True, cascade='all, delete-orphan')
    wishlist_items = db.relationship('WishlistItem', backref='product', lazy=True, cascade='all, delete-orphan')
    order_items = db.relationship('OrderItem', backref='product', lazy=True)
    reviews = db.relationship('Review', backref='product', lazy=True, cascade='all, delete-orphan')

    @property
    def concern_list(self):
        return [c.name for c in self.concerns]

    def set_concerns(self, names):
        self.concerns = [ProductConcern(name=n.strip()) for n in names if n and n.strip()]

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'stock_quantity': self.stock_quantity or 0,
            'category_id': self.category_id,
            'category': self.category,
            'product_type': self.product_type,
            'skin_type': self.skin_type,
            'concerns': self.concern_list,
            'offer_percentage': self.offer_percentage or 0,
            'usage_instructions': self.usage_instructions,
            'size': self.size,
            'benefits': self.benefits,
            'ingredients': self.ingredients,
            'product_details': self.product_details,
            'image_url': self.image_url,
            'image_url2': self.image_url2,
            'image_url3': self.image_url3,
            'created_at': _iso(self.created_at),
        }


class ProductConcern(db.Model):
    __tablename__ = 'product_concerns'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(50), nullable=False)


class Review(db.Model):
    __tablename__ = 'reviews'
    __table_args__ = (db.UniqueConstraint('user_id', 'product_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)  # 1-5
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'product_id': self.product_id,
            'rating': self.rating,
            'comment': self.comment,
            'user_name': self.user.name if self.user else None,
            'created_at': _iso(self.created_at),
        }


class BrandReview(db.Model):
    __tablename__ = 'brand_reviews'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'rating': self.rating,
            'comment': self.comment,
            'user_name': (self.user.name if self.user else None) or 'Anonymous',
            'avatar_url': (self.user.photo_url if self.user else None) or '',
            'created_at': _iso(self.created_at),
        }


class Coupon(db.Model):
    __tablename__ = 'coupons'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.Text)
    discount_type = db.Column(db.String(20), nullable=False)  # percentage, fixed
    discount_value = db.Column(db.Float, nullable=False)
    min_purchase_amount = db.Column(db.Float, default=0)
    max_discount_amount = db.Column(db.Float)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    usage_limit = db.Column(db.Integer)
    times_used = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    products = db.relationship('Product', secondary=coupon_products, lazy='subquery')

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': self.discount_value,
            'min_purchase_amount': self.min_purchase_amount or 0,
            'max_discount_amount': self.max_discount_amount,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'usage_limit': self.usage_limit,
            'times_used': self.times_used,
            'is_active': self.is_active,
            'product_ids': [p.id for p in self.products],
            'product_names': [p.name for p in self.products],
            'created_at': _iso(self.created_at),
        }


class CartItem(db.Model):
    __tablename__ = 'cart'
    __table_args__ = (db.UniqueConstraint('user_id', 'product_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, default=1, nullable=False)
    selected = db.Column(db.Boolean, default=True)
    discount_amount = db.Column(db.Float, default=0)
    added_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'selected': self.selected,
            'discount_amount': self.discount_amount or 0,
            'name': self.product.name if self.product else None,
            'price': self.product.price if self.product else None,
            'image_url': self.product.image_url if self.product else None,
            'added_at': _iso(self.added_at),
        }


class WishlistItem(db.Model):
    __tablename__ = 'wishlist'
    __table_args__ = (db.UniqueConstraint('user_id', 'product_id'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        product = self.product
        return {
            'id': self.id,
            'user_id': self.user_id,
            'product_id': self.product_id,
            'name': product.name if product else None,
            'price': product.price if product else None,
            'description': product.description if product else None,
            'image_url': product.image_url if product else None,
            'category': product.category if product else None,
            'created_at': _iso(self.created_at),
        }


class Address(db.Model):
    __tablename__ = 'addresses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone_number = db.Column(db.String(20), nullable=False)
    address_line1 = db.Column(db.String(255), nullable=False)
    address_line2 = db.Column(db.String(255))
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    postal_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(100), default='India')
    address_type = db.Column(db.String(20), default='Home')
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    SHIPPING_FIELDS = ('full_name', 'phone_number', 'address_line1', 'address_line2',
                       'city', 'state', 'postal_code', 'country')

    def to_dict(self):
        data = {field: getattr(self, field) for field in self.SHIPPING_FIELDS}
        data.update({
            'id': self.id,
            'user_id': self.user_id,
            'address_type': self.address_type,
            'is_default': self.is_default,
            'created_at': _iso(self.created_at),
        })
        return data


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(30), default='pending')  # pending_payment, pending, confirmed, processing, shipped, delivered, cancelled
    subtotal = db.Column(db.Float, default=0)
    discount_amount = db.Column(db.Float, default=0)
    total_amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(20))  # cod, online
    payment_status = db.Column(db.String(20), default='pending')  # pending, paid
    payment_id = db.Column(db.String(255))
    gateway_order_id = db.Column(db.String(255))
    is_temporary = db.Column(db.Boolean, default=False)
    shipping_full_name = db.Column(db.String(120))
    shipping_phone_number = db.Column(db.String(20))
    shipping_address_line1 = db.Column(db.String(255))
    shipping_address_line2 = db.Column(db.String(255))
    shipping_city = db.Column(db.String(100))
    shipping_state = db.Column(db.String(100))
    shipping_postal_code = db.Column(db.String(20))
    shipping_country = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship('OrderItem', backref='order', lazy=True, cascade='all, delete-orphan')

    @property
    def payment_method_display(self):
        return 'Cash on Delivery' if (self.payment_method or '').lower() == 'cod' else 'Online Payment'

    @property
    def shipping_address(self):
        return {field: getattr(self, 'shipping_' + field) for field in Address.SHIPPING_FIELDS}

    def to_dict(self, with_items=True):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'status': self.status,
            'subtotal': self.subtotal,
            'discount_amount': self.discount_amount or 0,
            'total_amount': self.total_amount,
            'payment_method': self.payment_method,
            'payment_method_display': self.payment_method_display,
            'payment_status': self.payment_status,
            'payment_id': self.payment_id,
            'gateway_order_id': self.gateway_order_id,
            'is_temporary': self.is_temporary,
            'shipping_address': self.shipping_address,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
        if with_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = 'order_items'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_at_time = db.Column(db.Float, nullable=False)

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'quantity': self.quantity,
            'price_at_time': self.price_at_time,
        }
