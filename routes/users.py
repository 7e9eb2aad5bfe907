import re

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func

from errors import ValidationError
from models import db, CartItem, Order, OrderItem, Product, User, WishlistItem
from upload_utils import remove_uploaded_file, save_uploaded_file

bp = Blueprint('users', __name__)

PHONE_RE = re.compile(r'^\d{10}$')


@bp.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify(current_user.to_dict())


@bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    phone = data.get('phone')

    if email and email != current_user.email:
        if User.query.filter(User.email == email, User.id != current_user.id).first():
            raise ValidationError('Email already in use')
        current_user.email = email
    if phone:
        if not PHONE_RE.match(str(phone)):
            raise ValidationError('Please enter a valid 10-digit phone number')
        current_user.phone = str(phone)
    if data.get('name'):
        current_user.name = data['name']

    db.session.commit()
    return jsonify(current_user.to_dict())


@bp.route('/dashboard', methods=['GET'])
@login_required
def dashboard():
    user_id = current_user.id
    recent_orders = (Order.query.filter(Order.user_id == user_id, Order.is_temporary.isnot(True))
                     .order_by(Order.created_at.desc(), Order.id.desc())
                     .limit(5).all())
    total_orders, total_spent = (db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
                                 .filter(Order.user_id == user_id, Order.is_temporary.isnot(True))
                                 .one())

    # most recently ordered products, each once
    recent_products = (db.session.query(Product, func.max(Order.created_at).label('ordered_at'))
                       .join(OrderItem, OrderItem.product_id == Product.id)
                       .join(Order, Order.id == OrderItem.order_id)
                       .filter(Order.user_id == user_id, Order.is_temporary.isnot(True))
                       .group_by(Product.id)
                       .order_by(func.max(Order.created_at).desc())
                       .limit(5).all())

    return jsonify({
        'profile': current_user.to_dict(),
        'stats': {
            'totalOrders': total_orders,
            'totalSpent': float(total_spent or 0),
            'wishlistCount': WishlistItem.query.filter_by(user_id=user_id).count(),
            'cartCount': CartItem.query.filter_by(user_id=user_id).count(),
        },
        'recentOrders': [order.to_dict() for order in recent_orders],
        'recentlyViewed': [product.to_dict() for product, _ in recent_products],
    })


@bp.route('/profile/photo', methods=['POST'])
@login_required
def upload_photo():
    photo = request.files.get('photo')
    if not photo or not photo.filename:
        raise ValidationError('No file uploaded')

    photo_url = save_uploaded_file(photo, 'profile-photos')
    remove_uploaded_file(current_user.photo_url)
    current_user.photo_url = photo_url
    db.session.commit()
    return jsonify({'message': 'Profile photo updated successfully', 'photo_url': photo_url})
