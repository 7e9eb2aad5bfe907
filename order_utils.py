"""Order creation and the temporary-order payment lifecycle.

Cash-on-delivery orders are final as soon as they are created. Online orders
start as temporary ``pending_payment`` rows and only take stock and clear the
cart once the gateway payment is confirmed; cancelling one deletes it.
"""
import logging

from sqlalchemy import or_

import email_utils
import payment_utils
from errors import NotFound, ValidationError
from models import db, transaction, Address, CartItem, Order, OrderItem, Product

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('cod', 'online')
ORDER_STATUSES = ('pending', 'processing', 'shipped', 'delivered', 'cancelled')
REQUIRED_SHIPPING_FIELDS = ('full_name', 'phone_number', 'address_line1', 'city', 'state', 'postal_code')


def resolve_shipping_address(user, payload):
    address_id = payload.get('address_id')
    if address_id:
        address = Address.query.filter_by(id=address_id, user_id=user.id).first()
        if address is None:
            raise NotFound('Address not found')
        return {field: getattr(address, field) for field in Address.SHIPPING_FIELDS}

    shipping = payload.get('shipping_address')
    if not isinstance(shipping, dict):
        raise ValidationError('Shipping address is required')
    missing = [field for field in REQUIRED_SHIPPING_FIELDS if not shipping.get(field)]
    if missing:
        raise ValidationError('Missing shipping address fields', missing=missing)

    address = {field: shipping.get(field) for field in Address.SHIPPING_FIELDS}
    address['country'] = address['country'] or 'India'
    return address


def _quantities(items):
    if not items or not isinstance(items, list):
        raise ValidationError('Order must contain at least one item')

    quantities = {}
    for item in items:
        product_id = item.get('product_id')
        try:
            quantity = int(item.get('quantity', 1))
        except (TypeError, ValueError):
            raise ValidationError('Invalid quantity', received=item.get('quantity'))
        if product_id is None or quantity < 1:
            raise ValidationError('Each item needs a product_id and a positive quantity')
        quantities[product_id] = quantities.get(product_id, 0) + quantity
    return quantities


def build_order(user, payment_method, shipping, items):
    """A new, unsaved order with price-snapshotted items and the cart's coupon discount."""
    order = Order(user_id=user.id, payment_method=payment_method, payment_status='pending')
    for field, value in shipping.items():
        setattr(order, 'shipping_' + field, value)

    subtotal = 0.0
    for product_id, quantity in _quantities(items).items():
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f'Product {product_id} not found')
        if (product.stock_quantity or 0) < quantity:
            raise ValidationError(f'Insufficient stock for {product.name}')
        order.items.append(OrderItem(product_id=product.id, quantity=quantity,
                                     price_at_time=product.price))
        subtotal += product.price * quantity

    # a carried line discount never exceeds that line's own amount
    product_ids = [item.product_id for item in order.items]
    carried = dict(db.session.query(CartItem.product_id, CartItem.discount_amount)
                   .filter(CartItem.user_id == user.id, CartItem.product_id.in_(product_ids))
                   .all())
    discount = sum(min(float(carried.get(item.product_id) or 0), item.price_at_time * item.quantity)
                   for item in order.items)
    discount = min(discount, subtotal)

    order.subtotal = round(subtotal, 2)
    order.discount_amount = round(discount, 2)
    order.total_amount = round(subtotal - discount, 2)
    return order


def decrement_stock(order):
    for item in order.items:
        product = Product.query.filter_by(id=item.product_id).with_for_update().first()
        if product is None:
            raise NotFound(f'Product {item.product_id} not found')
        if (product.stock_quantity or 0) < item.quantity:
            raise ValidationError(f'Insufficient stock for {product.name}')
        product.stock_quantity -= item.quantity


def clear_cart(user_id):
    CartItem.query.filter_by(user_id=user_id).delete()


def create_order(user, payload):
    """Returns ``(order, gateway_order)``; ``gateway_order`` is None for COD."""
    payment_method = payload.get('payment_method')
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError('Invalid payment method')
    shipping = resolve_shipping_address(user, payload)
    items = payload.get('items')

    if payment_method == 'online':
        with transaction():
            order = build_order(user, 'online', shipping, items)
            order.status = 'pending_payment'
            order.is_temporary = True
            db.session.add(order)

        try:
            gateway_order = payment_utils.create_gateway_order(order.total_amount, order.id)
        except Exception:
            logger.error('Gateway order failed, discarding temporary order %s', order.id)
            discard_order(order)
            raise

        order.gateway_order_id = gateway_order['id']
        db.session.commit()
        return order, gateway_order

    with transaction():
        order = build_order(user, 'cod', shipping, items)
        order.status = 'pending'
        order.is_temporary = False
        db.session.add(order)
        db.session.flush()
        decrement_stock(order)
        clear_cart(user.id)

    logger.info('COD order %s created for user %s', order.id, user.id)
    email_utils.send_order_confirmation(order)
    return order, None


def discard_order(order):
    with transaction():
        db.session.delete(order)


def find_temporary_order(user, order_id, lock=False):
    query = Order.query.filter_by(id=order_id, user_id=user.id, is_temporary=True)
    if lock:
        query = query.with_for_update()
    order = query.first()
    if order is None:
        raise NotFound('Order not found or not a temporary order')
    return order


def confirm_payment(user, order_id, payment_id, gateway_order_id):
    """Turn a temporary order into a confirmed, paid one.

    The signed gateway order id must be the one created for this order.
    Stock and cart changes happen in the same transaction, so a failure
    leaves the order temporary and the payment can be confirmed again.
    """
    with transaction():
        order = find_temporary_order(user, order_id, lock=True)
        if not gateway_order_id or gateway_order_id != order.gateway_order_id:
            logger.warning('Gateway order %s does not belong to order %s', gateway_order_id, order.id)
            raise ValidationError('Payment does not match this order')
        order.status = 'confirmed'
        order.payment_status = 'paid'
        order.payment_method = 'online'
        order.payment_id = payment_id
        order.is_temporary = False
        decrement_stock(order)
        clear_cart(user.id)

    logger.info('Payment %s confirmed order %s', payment_id, order.id)
    email_utils.send_order_confirmation(order)
    return order


def cancel_temporary_order(user, order_id):
    with transaction():
        order = find_temporary_order(user, order_id)
        db.session.delete(order)
    logger.info('Temporary order %s cancelled by user %s', order_id, user.id)


def user_orders(user):
    return (Order.query
            .filter(Order.user_id == user.id,
                    or_(Order.is_temporary.is_(False), Order.is_temporary.is_(None)))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all())


def get_user_order(user, order_id):
    order = (Order.query
             .filter(Order.id == order_id, Order.user_id == user.id,
                     or_(Order.is_temporary.is_(False), Order.is_temporary.is_(None)))
             .first())
    if order is None:
        raise NotFound('Order not found')
    return order


def update_order_status(order_id, status):
    if status not in ORDER_STATUSES:
        raise ValidationError('Invalid status')
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound('Order not found')
    order.status = status
    db.session.commit()
    return order
