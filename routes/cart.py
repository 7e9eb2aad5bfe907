from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from errors import NotFound, ValidationError
from models import db, CartItem, Product
from realtime_utils import notify_user

bp = Blueprint('cart', __name__)


def _own_item(item_id):
    item = CartItem.query.filter_by(id=item_id, user_id=current_user.id).first()
    if item is None:
        raise NotFound('Cart item not found')
    return item


def _quantity(value, default=None):
    if value is None and default is not None:
        return default
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        raise ValidationError('Quantity must be a positive number')
    if quantity < 1:
        raise ValidationError('Quantity must be a positive number')
    return quantity


def _cart_changed():
    items = CartItem.query.filter_by(user_id=current_user.id).order_by(CartItem.added_at).all()
    notify_user(current_user.id, 'CART_UPDATED', [item.to_dict() for item in items])


@bp.route('/', methods=['GET'])
@login_required
def get_cart():
    items = CartItem.query.filter_by(user_id=current_user.id).order_by(CartItem.added_at).all()
    return jsonify([item.to_dict() for item in items])


@bp.route('/', methods=['POST'])
@login_required
def add_to_cart():
    data = request.get_json(silent=True) or {}
    product_id = data.get('product_id')
    quantity = _quantity(data.get('quantity'), default=1)
    if product_id is None:
        raise ValidationError('Product ID is required')
    Product.query.get_or_404(product_id, description='Product not found')

    item = CartItem.query.filter_by(user_id=current_user.id, product_id=product_id).first()
    if item:
        item.quantity += quantity
        item.discount_amount = 0
    else:
        item = CartItem(user_id=current_user.id, product_id=product_id, quantity=quantity)
        db.session.add(item)
    db.session.commit()

    _cart_changed()
    return jsonify(item.to_dict())


@bp.route('/<int:item_id>', methods=['PUT'])
@login_required
def update_quantity(item_id):
    data = request.get_json(silent=True) or {}
    item = _own_item(item_id)
    item.quantity = _quantity(data.get('quantity'))
    item.discount_amount = 0
    db.session.commit()

    _cart_changed()
    return jsonify(item.to_dict())


@bp.route('/<int:item_id>/select', methods=['PUT'])
@login_required
def toggle_selected(item_id):
    data = request.get_json(silent=True) or {}
    item = _own_item(item_id)
    item.selected = bool(data.get('selected'))
    db.session.commit()

    _cart_changed()
    return jsonify(item.to_dict())


@bp.route('/clear', methods=['DELETE'])
@login_required
def clear_cart():
    CartItem.query.filter_by(user_id=current_user.id).delete()
    db.session.commit()

    _cart_changed()
    return jsonify({'message': 'Cart cleared successfully'})


@bp.route('/<int:item_id>', methods=['DELETE'])
@login_required
def remove_item(item_id):
    item = _own_item(item_id)
    db.session.delete(item)
    db.session.commit()

    _cart_changed()
    return jsonify({'message': 'Item removed from cart'})
