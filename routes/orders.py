from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

import order_utils
import payment_utils
from errors import ValidationError

bp = Blueprint('orders', __name__)


@bp.route('/', methods=['POST'])
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    order, gateway_order = order_utils.create_order(current_user, data)

    response = {'message': 'Order created successfully', 'order': order.to_dict()}
    if gateway_order:
        response['message'] = 'Order created, awaiting payment'
        response['razorpay_order'] = gateway_order
    return jsonify(response), 201


@bp.route('/<int:order_id>/payment-success', methods=['POST'])
@login_required
def payment_success(order_id):
    data = request.get_json(silent=True) or {}
    gateway_order_id = data.get('razorpay_order_id')
    payment_id = data.get('razorpay_payment_id')

    if not payment_utils.verify_signature(gateway_order_id, payment_id, data.get('razorpay_signature')):
        raise ValidationError('Invalid payment signature')

    order = order_utils.confirm_payment(current_user, order_id, payment_id, gateway_order_id)
    return jsonify({'message': 'Payment confirmed', 'order': order.to_dict()})


@bp.route('/<int:order_id>/cancel-payment', methods=['POST'])
@login_required
def cancel_payment(order_id):
    order_utils.cancel_temporary_order(current_user, order_id)
    return jsonify({'message': 'Order cancelled successfully'})


@bp.route('/', methods=['GET'])
@login_required
def list_orders():
    orders = order_utils.user_orders(current_user)
    current_app.logger.debug('%s orders for user %s', len(orders), current_user.id)
    return jsonify([order.to_dict() for order in orders])


@bp.route('/<int:order_id>', methods=['GET'])
@login_required
def order_detail(order_id):
    return jsonify(order_utils.get_user_order(current_user, order_id).to_dict())
