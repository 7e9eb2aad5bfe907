from flask import Blueprint, jsonify

bp = Blueprint('payments', __name__)

PAYMENT_METHOD_OPTIONS = (
    {'id': 'online', 'name': 'Online Payment', 'description': 'Pay securely with cards, UPI or net banking'},
    {'id': 'cod', 'name': 'Cash on Delivery', 'description': 'Pay when your order arrives'},
)


@bp.route('/payment-methods', methods=['GET'])
def payment_methods():
    return jsonify(list(PAYMENT_METHOD_OPTIONS))
