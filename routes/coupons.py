from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import or_

import coupon_utils
from errors import ValidationError
from models import Coupon

bp = Blueprint('coupons', __name__)


@bp.route('/', methods=['GET'])
def active_coupons():
    """Coupons a customer can use right now."""
    now = datetime.utcnow()
    coupons = (Coupon.query
               .filter(Coupon.is_active.is_(True),
                       Coupon.start_date <= now,
                       Coupon.end_date >= now,
                       or_(Coupon.usage_limit.is_(None), Coupon.times_used < Coupon.usage_limit))
               .order_by(Coupon.created_at.desc())
               .all())
    return jsonify([coupon.to_dict() for coupon in coupons])


@bp.route('/validate', methods=['POST'])
@login_required
def validate():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not code:
        raise ValidationError('Coupon code is required')
    return jsonify(coupon_utils.validate_coupon(code, data.get('products') or []))


@bp.route('/apply', methods=['POST'])
@login_required
def apply():
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if not code:
        raise ValidationError('Coupon code is required')
    return jsonify(coupon_utils.apply_coupon(current_user, code, data.get('cart_items')))
