import logging
import time

import razorpay
from flask import current_app
from razorpay.errors import SignatureVerificationError

from errors import PaymentGatewayError, ValidationError

logger = logging.getLogger(__name__)


def get_client():
    config = current_app.config
    if not config.get('RAZORPAY_KEY_ID') or not config.get('RAZORPAY_KEY_SECRET'):
        raise PaymentGatewayError('Razorpay is not configured')
    return razorpay.Client(auth=(config['RAZORPAY_KEY_ID'], config['RAZORPAY_KEY_SECRET']))


def to_minor_units(amount):
    return int(round(float(amount) * 100))


def create_gateway_order(amount, order_id):
    """Create the Razorpay order a client pays against. ``amount`` is in rupees."""
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError('Invalid amount')
    if amount <= 0:
        raise ValidationError('Invalid amount')

    options = {
        'amount': to_minor_units(amount),
        'currency': current_app.config['PAYMENT_CURRENCY'],
        'receipt': f'order_{order_id}_{int(time.time() * 1000)}',
        'payment_capture': 1,
    }
    client = get_client()
    try:
        gateway_order = client.order.create(data=options)
    except Exception as e:
        logger.exception('Error creating Razorpay order for order %s', order_id)
        raise PaymentGatewayError('Failed to create Razorpay order', details=str(e))

    return {
        'id': gateway_order['id'],
        'amount': gateway_order['amount'],
        'currency': gateway_order['currency'],
        'key': current_app.config['RAZORPAY_KEY_ID'],
    }


def verify_signature(gateway_order_id, payment_id, signature):
    """Check the HMAC-SHA256 of ``order_id|payment_id`` Razorpay hands to the client."""
    if not (gateway_order_id and payment_id and signature):
        return False
    try:
        get_client().utility.verify_payment_signature({
            'razorpay_order_id': gateway_order_id,
            'razorpay_payment_id': payment_id,
            'razorpay_signature': signature,
        })
    except SignatureVerificationError:
        logger.warning('Invalid payment signature for gateway order %s', gateway_order_id)
        return False
    return True
