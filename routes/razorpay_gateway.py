from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

import order_utils
import payment_utils
from errors import ValidationError

bp = Blueprint('razorpay', __name__)


@bp.route('/create-order', methods=['POST'])
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    amount = data.get('amount')
    if amount is None:
        raise ValidationError('Amount is required')
    gateway_order = payment_utils.create_gateway_order(amount, data.get('order_id'))
    return jsonify(gateway_order)


@bp.route('/verify-payment', methods=['POST'])
@login_required
def verify_payment():
    data = request.get_json(silent=True) or {}
    gateway_order_id = data.get('razorpay_order_id')
    payment_id = data.get('razorpay_payment_id')
    order_id = data.get('order_id')

    if not payment_utils.verify_signature(gateway_order_id, payment_id, data.get('razorpay_signature')):
        raise ValidationError('Invalid payment signature')
    if not order_id:
        raise ValidationError('Order ID is required')

    order = order_utils.confirm_payment(current_user, order_id, payment_id, gateway_order_id)
    return jsonify({'success': True, 'message': 'Payment verified successfully', 'order': order.to_dict()})
