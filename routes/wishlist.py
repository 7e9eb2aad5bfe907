from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from errors import Conflict, NotFound, ValidationError
from models import db, Product, WishlistItem
from realtime_utils import notify_user

bp = Blueprint('wishlist', __name__)


def _wishlist():
    items = (WishlistItem.query.filter_by(user_id=current_user.id)
             .order_by(WishlistItem.created_at.desc()).all())
    return [item.to_dict() for item in items]


@bp.route('/', methods=['GET'])
@login_required
def get_wishlist():
    return jsonify(_wishlist())


@bp.route('/', methods=['POST'])
@login_required
def add_to_wishlist():
    data = request.get_json(silent=True) or {}
    product_id = data.get('product_id')
    if product_id is None:
        raise ValidationError('Product ID is required')
    Product.query.get_or_404(product_id, description='Product not found')

    if WishlistItem.query.filter_by(user_id=current_user.id, product_id=product_id).first():
        raise Conflict('Item already in wishlist')

    item = WishlistItem(user_id=current_user.id, product_id=product_id)
    db.session.add(item)
    db.session.commit()

    notify_user(current_user.id, 'WISHLIST_UPDATED', _wishlist())
    return jsonify(item.to_dict())


@bp.route('/<int:product_id>', methods=['DELETE'])
@login_required
def remove_from_wishlist(product_id):
    item = WishlistItem.query.filter_by(user_id=current_user.id, product_id=product_id).first()
    if item is None:
        raise NotFound('Item not found in wishlist')
    db.session.delete(item)
    db.session.commit()

    notify_user(current_user.id, 'WISHLIST_UPDATED', _wishlist())
    return jsonify({'message': 'Item removed from wishlist'})
