"""Coupon validation and discount allocation.

A coupon restricted to a set of products only discounts the cart lines whose
product is in that set; an empty set means every product is eligible. The
minimum purchase threshold is checked against the whole cart, not only the
eligible lines.
"""
import logging
from datetime import datetime

from sqlalchemy import func

from errors import NotFound, ValidationError
from models import db, transaction, CartItem, Coupon, Product

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ('percentage', 'fixed')


def _money(value):
    return round(float(value), 2)


def find_coupon(code, lock=False):
    query = Coupon.query.filter(func.upper(Coupon.code) == (code or '').strip().upper())
    if lock:
        query = query.with_for_update()
    return query.first()


def check_coupon(coupon, now=None):
    if coupon is None:
        raise NotFound('Invalid coupon code')
    if not coupon.is_active:
        raise ValidationError('This coupon is no longer active')

    now = now or datetime.utcnow()
    if now < coupon.start_date or now > coupon.end_date:
        raise ValidationError('This coupon has expired')

    if coupon.usage_limit is not None and coupon.times_used >= coupon.usage_limit:
        raise ValidationError('This coupon has reached its usage limit')


def price_lines(items, id_key):
    """Turn ``[{id_key, quantity}]`` into ``[(product_id, amount)]`` using current prices.

    Repeated products are merged into one line. Lines whose product no
    longer exists are skipped.
    """
    amounts = {}
    for item in items or []:
        product_id = item.get(id_key)
        try:
            quantity = int(item.get('quantity', 1))
        except (TypeError, ValueError):
            raise ValidationError('Invalid quantity', received=item.get('quantity'))
        if quantity < 1:
            raise ValidationError('Invalid quantity', received=item.get('quantity'))
        product = db.session.get(Product, product_id) if product_id is not None else None
        if product is None:
            continue
        amounts[product.id] = amounts.get(product.id, 0) + product.price * quantity
    return list(amounts.items())


def is_eligible(coupon, product_id):
    applicable = {p.id for p in coupon.products}
    return not applicable or product_id in applicable


def compute_discount(coupon, lines):
    """Discount for a whole cart; raises when the minimum purchase is not met."""
    total_amount = sum(amount for _, amount in lines)
    eligible_amount = sum(amount for product_id, amount in lines if is_eligible(coupon, product_id))

    min_purchase = coupon.min_purchase_amount or 0
    if total_amount < min_purchase:
        raise ValidationError(f'Minimum purchase amount of ₹{min_purchase:g} required')

    if coupon.discount_type == 'percentage':
        discount = eligible_amount * coupon.discount_value / 100
        if coupon.max_discount_amount:
            discount = min(discount, coupon.max_discount_amount)
    else:
        discount = min(coupon.discount_value, eligible_amount)

    return {
        'total_amount': _money(total_amount),
        'eligible_amount': _money(eligible_amount),
        'discount_amount': _money(discount),
    }


def allocate_discount(coupon, lines):
    """Split the cart discount over its lines.

    Percentage coupons discount each eligible line by the percentage; fixed
    coupons are spread over eligible lines in proportion to their amount.
    When the cap bites every line is scaled down by the same ratio.
    Returns ``(total_discount, {product_id: line_discount})``.
    """
    summary = compute_discount(coupon, lines)
    eligible_amount = summary['eligible_amount']

    per_line = {}
    for product_id, amount in lines:
        discount = 0.0
        if is_eligible(coupon, product_id) and eligible_amount > 0:
            if coupon.discount_type == 'percentage':
                discount = amount * coupon.discount_value / 100
            else:
                discount = min(coupon.discount_value, eligible_amount) * amount / eligible_amount
        per_line[product_id] = discount

    total_discount = sum(per_line.values())
    cap = coupon.max_discount_amount
    if cap and total_discount > cap:
        ratio = cap / total_discount
        per_line = {product_id: discount * ratio for product_id, discount in per_line.items()}
        total_discount = cap

    return _money(total_discount), {product_id: _money(d) for product_id, d in per_line.items()}


def validate_coupon(code, products):
    coupon = find_coupon(code)
    check_coupon(coupon)
    summary = compute_discount(coupon, price_lines(products, 'id'))
    data = coupon.to_dict()
    data.update(summary)
    return data


def apply_coupon(user, code, cart_items=None):
    """Write the coupon's per-line discount onto the user's cart and count the use.

    Lines are priced from the user's stored cart rows. ``cart_items`` only
    picks which products take part; without it the selected rows are used.
    Validation, the cart updates and the usage increment share one
    transaction.
    """
    with transaction():
        coupon = find_coupon(code, lock=True)
        check_coupon(coupon)

        rows = CartItem.query.filter_by(user_id=user.id).all()
        if cart_items is None:
            rows = [row for row in rows if row.selected]
        else:
            wanted = {str(item.get('product_id')) for item in cart_items if isinstance(item, dict)}
            rows = [row for row in rows if str(row.product_id) in wanted]
        if not rows:
            raise ValidationError('Cart is empty')

        lines = price_lines([{'product_id': row.product_id, 'quantity': row.quantity} for row in rows],
                            'product_id')
        total_discount, per_line = allocate_discount(coupon, lines)

        # a new coupon replaces whatever discount the cart carried before
        CartItem.query.filter_by(user_id=user.id).update({'discount_amount': 0}, synchronize_session=False)
        for product_id, discount in per_line.items():
            CartItem.query.filter_by(user_id=user.id, product_id=product_id).update(
                {'discount_amount': discount}, synchronize_session=False)

        coupon.times_used = (coupon.times_used or 0) + 1

    logger.info('Coupon %s applied for user %s: %.2f off', coupon.code, user.id, total_discount)
    return {
        'success': True,
        'coupon': coupon.code,
        'items': [{'product_id': pid, 'discount': d} for pid, d in per_line.items()],
        'total_discount': total_discount,
    }
