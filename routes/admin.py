from datetime import datetime

from flask import Blueprint, current_app, jsonify, request, send_file
from sqlalchemy import distinct, func

import catalog_utils
import order_utils
from auth_utils import admin_required
from coupon_utils import DISCOUNT_TYPES
from errors import Conflict, NotFound, ValidationError
from models import db, transaction, Category, Coupon, Order, OrderItem, Product, Review, User, WishlistItem
from report_utils import export_orders_report
from routes.categories import category_rows

bp = Blueprint('admin', __name__)

# the admin product table uses the dashboard's camelCase query names
ADMIN_FILTER_NAMES = {
    'priceMin': 'min_price',
    'priceMax': 'max_price',
    'productTypes': 'product_types',
    'skinTypes': 'skin_types',
}


def _parse_date(value, field):
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00')).replace(tzinfo=None)
        except ValueError:
            pass
    raise ValidationError(f'Invalid {field}', received=value)


def _optional_number(data, field, cast=float):
    value = data.get(field)
    if value in (None, ''):
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}', received=value)


def _coupon_products(product_ids):
    if not isinstance(product_ids, list):
        raise ValidationError('product_ids must be a list')
    products = Product.query.filter(Product.id.in_(product_ids)).all() if product_ids else []
    if len(products) != len(set(product_ids)):
        raise ValidationError('Unknown product in product_ids')
    return products


# ========== dashboard ==========
@bp.route('/stats', methods=['GET'])
@admin_required
def stats():
    total_revenue = db.session.query(func.coalesce(func.sum(Order.total_amount), 0)).scalar()
    return jsonify({
        'total_users': User.query.filter(User.role != 'admin').count(),
        'total_products': Product.query.count(),
        'total_orders': Order.query.count(),
        'total_revenue': float(total_revenue or 0),
    })


@bp.route('/users', methods=['GET'])
@admin_required
def users():
    rows = (db.session.query(User, func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0))
            .outerjoin(Order, Order.user_id == User.id)
            .filter(User.role != 'admin')
            .group_by(User.id)
            .order_by(User.created_at.desc())
            .all())
    result = []
    for user, total_orders, total_spent in rows:
        data = user.to_dict()
        data['total_orders'] = total_orders
        data['total_spent'] = float(total_spent or 0)
        result.append(data)
    return jsonify(result)


@bp.route('/products', methods=['GET'])
@admin_required
def products():
    args = {ADMIN_FILTER_NAMES.get(key, key): value for key, value in request.args.items()}
    query, parent = catalog_utils.product_query()
    rows = (catalog_utils.apply_filters(query, parent, args)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .all())

    order_counts = dict(db.session.query(OrderItem.product_id, func.count(distinct(OrderItem.order_id)))
                        .group_by(OrderItem.product_id).all())
    result = []
    for row in rows:
        data = catalog_utils.serialize_row(row)
        data['order_count'] = order_counts.get(data['id'], 0)
        result.append(data)
    return jsonify(result)


@bp.route('/orders', methods=['GET'])
@admin_required
def orders():
    result = []
    for order in Order.query.order_by(Order.created_at.desc(), Order.id.desc()).all():
        data = order.to_dict()
        data['user_name'] = order.customer.name if order.customer else None
        data['user_email'] = order.customer.email if order.customer else None
        result.append(data)
    return jsonify(result)


@bp.route('/analytics/products', methods=['GET'])
@admin_required
def product_analytics():
    sales = {
        product_id: (orders, units, revenue)
        for product_id, orders, units, revenue in db.session.query(
            OrderItem.product_id,
            func.count(distinct(OrderItem.order_id)),
            func.sum(OrderItem.quantity),
            func.sum(OrderItem.quantity * OrderItem.price_at_time),
        ).group_by(OrderItem.product_id).all()
    }
    ratings = {
        product_id: (average, count)
        for product_id, average, count in db.session.query(
            Review.product_id, func.avg(Review.rating), func.count(Review.id),
        ).group_by(Review.product_id).all()
    }
    wishlisted = dict(db.session.query(WishlistItem.product_id, func.count(WishlistItem.id))
                      .group_by(WishlistItem.product_id).all())

    result = []
    for product in Product.query.all():
        orders, units, revenue = sales.get(product.id, (0, 0, 0))
        average, count = ratings.get(product.id, (0, 0))
        result.append({
            'id': product.id,
            'name': product.name,
            'price': product.price,
            'total_orders': orders,
            'total_units_sold': int(units or 0),
            'total_revenue': round(float(revenue or 0), 2),
            'average_rating': round(float(average or 0), 2),
            'review_count': count,
            'wishlist_count': wishlisted.get(product.id, 0),
        })
    result.sort(key=lambda item: item['total_revenue'], reverse=True)
    return jsonify(result)


@bp.route('/orders/<int:order_id>/status', methods=['PUT'])
@admin_required
def update_order_status(order_id):
    data = request.get_json(silent=True) or {}
    order = order_utils.update_order_status(order_id, data.get('status'))
    current_app.logger.info('Order %s moved to %s', order.id, order.status)
    return jsonify(order.to_dict())


# ========== categories ==========
@bp.route('/categories', methods=['GET'])
@admin_required
def list_categories():
    return jsonify(category_rows())


@bp.route('/categories', methods=['POST'])
@admin_required
def add_category():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Category name is required')
    if Category.query.filter(func.lower(Category.name) == name.lower()).first():
        raise Conflict('Category name already exists')

    parent_id = data.get('parent_id')
    if parent_id:
        Category.query.get_or_404(parent_id, description='Parent category not found')

    category = Category(name=name, description=data.get('description'),
                        image_url=data.get('image_url'), parent_id=parent_id or None)
    db.session.add(category)
    db.session.commit()
    return jsonify(category.to_dict()), 201


@bp.route('/categories/<int:category_id>', methods=['PUT'])
@admin_required
def update_category(category_id):
    category = Category.query.get_or_404(category_id, description='Category not found')
    data = request.get_json(silent=True) or {}

    name = (data.get('name') or '').strip()
    if name and name.lower() != category.name.lower():
        if Category.query.filter(func.lower(Category.name) == name.lower()).first():
            raise Conflict('Category name already exists')
    if name:
        category.name = name
        Product.query.filter_by(category_id=category.id).update(
            {'category': name}, synchronize_session=False)

    if 'parent_id' in data:
        parent_id = data.get('parent_id') or None
        if parent_id is not None and int(parent_id) == category.id:
            raise ValidationError('A category cannot be its own parent')
        category.parent_id = parent_id
    for field in ('description', 'image_url'):
        if field in data:
            setattr(category, field, data.get(field))

    db.session.commit()
    return jsonify(category.to_dict())


@bp.route('/categories/<int:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    category = Category.query.get_or_404(category_id, description='Category not found')
    if category.children:
        raise ValidationError('Cannot delete category with existing subcategories')
    if category.products:
        raise ValidationError('Cannot delete category with existing products')

    db.session.delete(category)
    db.session.commit()
    return jsonify({'message': 'Category deleted successfully'})


# ========== coupons ==========
@bp.route('/coupons', methods=['GET'])
@admin_required
def list_coupons():
    coupons = Coupon.query.order_by(Coupon.created_at.desc()).all()
    return jsonify([coupon.to_dict() for coupon in coupons])


@bp.route('/coupons', methods=['POST'])
@admin_required
def add_coupon():
    data = request.get_json(silent=True) or {}
    code = (data.get('code') or '').strip().upper()
    if not code or data.get('discount_value') in (None, ''):
        raise ValidationError('Code and discount value are required')
    if data.get('discount_type') not in DISCOUNT_TYPES:
        raise ValidationError('Invalid discount type', supported=list(DISCOUNT_TYPES))
    if Coupon.query.filter(func.upper(Coupon.code) == code).first():
        raise Conflict('Coupon code already exists')

    with transaction():
        coupon = Coupon(
            code=code,
            description=data.get('description'),
            discount_type=data['discount_type'],
            discount_value=_optional_number(data, 'discount_value'),
            min_purchase_amount=_optional_number(data, 'min_purchase_amount') or 0,
            max_discount_amount=_optional_number(data, 'max_discount_amount'),
            start_date=_parse_date(data.get('start_date'), 'start_date'),
            end_date=_parse_date(data.get('end_date'), 'end_date'),
            usage_limit=_optional_number(data, 'usage_limit', int),
        )
        coupon.products = _coupon_products(data.get('product_ids') or [])
        db.session.add(coupon)

    current_app.logger.info('Coupon %s created', coupon.code)
    return jsonify(coupon.to_dict()), 201


@bp.route('/coupons/<int:coupon_id>', methods=['PUT'])
@admin_required
def update_coupon(coupon_id):
    coupon = Coupon.query.get_or_404(coupon_id, description='Coupon not found')
    data = request.get_json(silent=True) or {}

    with transaction():
        if data.get('description') is not None:
            coupon.description = data['description']
        if data.get('discount_type') is not None:
            if data['discount_type'] not in DISCOUNT_TYPES:
                raise ValidationError('Invalid discount type', supported=list(DISCOUNT_TYPES))
            coupon.discount_type = data['discount_type']
        for field in ('discount_value', 'min_purchase_amount', 'max_discount_amount'):
            value = _optional_number(data, field)
            if value is not None:
                setattr(coupon, field, value)
        usage_limit = _optional_number(data, 'usage_limit', int)
        if usage_limit is not None:
            coupon.usage_limit = usage_limit
        for field in ('start_date', 'end_date'):
            if data.get(field):
                setattr(coupon, field, _parse_date(data[field], field))
        if data.get('is_active') is not None:
            coupon.is_active = bool(data['is_active'])
        if data.get('product_ids') is not None:
            coupon.products = _coupon_products(data['product_ids'])

    return jsonify(coupon.to_dict())


@bp.route('/coupons/<int:coupon_id>', methods=['DELETE'])
@admin_required
def delete_coupon(coupon_id):
    coupon = db.session.get(Coupon, coupon_id)
    if coupon is None:
        raise NotFound('Coupon not found')
    db.session.delete(coupon)
    db.session.commit()
    return jsonify({'message': 'Coupon deleted successfully'})


# ========== reports ==========
@bp.route('/report/orders/<fmt>', methods=['GET'])
@admin_required
def order_report(fmt):
    orders = Order.query.filter(Order.is_temporary.isnot(True)).order_by(Order.created_at).all()
    filepath = export_orders_report(orders, fmt, current_app.config['REPORT_FOLDER'])
    return send_file(filepath, as_attachment=True)
