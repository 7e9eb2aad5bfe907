from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

import catalog_utils
from auth_utils import admin_required
from errors import Conflict, NotFound, ValidationError
from models import db, Category, Product, Review
from upload_utils import remove_uploaded_file, save_uploaded_file

bp = Blueprint('products', __name__)

TEXT_FIELDS = ('description', 'usage_instructions', 'size', 'benefits', 'ingredients',
               'product_details', 'product_type', 'skin_type')
IMAGE_FIELDS = ('image_url', 'image_url2', 'image_url3')


def _request_data():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _concerns(data):
    if hasattr(data, 'getlist') and len(data.getlist('concerns')) > 1:
        return data.getlist('concerns')
    value = data.get('concerns')
    if isinstance(value, list):
        return value
    return [part.strip() for part in (value or '').split(',') if part.strip()]


def _offer(value):
    try:
        offer = int(value or 0)
    except (TypeError, ValueError):
        offer = -1
    if offer < 0 or offer > 100:
        raise ValidationError('Invalid offer percentage. Must be between 0 and 100', received=value)
    return offer


def _category(category_id):
    try:
        category = db.session.get(Category, int(category_id))
    except (TypeError, ValueError):
        raise ValidationError('Invalid category ID format', received=category_id)
    if category is None:
        raise ValidationError('Invalid category ID')
    return category


@bp.route('/', methods=['GET'])
def list_products():
    result = catalog_utils.list_products(request.args)
    result['success'] = True
    return jsonify(result)


@bp.route('/<int:product_id>', methods=['GET'])
def product_detail(product_id):
    product = catalog_utils.get_product_detail(product_id)
    if product is None:
        raise NotFound('Product not found', success=False)
    return jsonify(product)


@bp.route('/', methods=['POST'])
@admin_required
def add_product():
    data = _request_data()
    name, price, category_id = data.get('name'), data.get('price'), data.get('category_id')
    if not name or price in (None, '') or not category_id:
        raise ValidationError('Name, price, and category are required')

    category = _category(category_id)
    try:
        price = float(price)
        stock = int(data.get('stock_quantity') or 0)
    except (TypeError, ValueError):
        raise ValidationError('Invalid price or stock quantity format')

    product = Product(
        name=name,
        price=price,
        stock_quantity=stock,
        category_id=category.id,
        category=category.name,
        offer_percentage=_offer(data.get('offer_percentage')),
    )
    for field in TEXT_FIELDS:
        setattr(product, field, data.get(field) or None)
    product.description = product.description or ''

    images = request.files.getlist('images')[:3]
    for field, image in zip(IMAGE_FIELDS, images):
        setattr(product, field, save_uploaded_file(image))
    product.set_concerns(_concerns(data))

    db.session.add(product)
    db.session.commit()
    current_app.logger.info('Product %s created', product.id)
    return jsonify(product.to_dict()), 201


@bp.route('/<int:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    product = Product.query.get_or_404(product_id, description='Product not found')
    data = _request_data()

    if data.get('name'):
        product.name = data['name']
    if data.get('price') not in (None, ''):
        try:
            product.price = float(data['price'])
        except (TypeError, ValueError):
            raise ValidationError('Invalid price format', received=data['price'])
    if data.get('stock_quantity') not in (None, ''):
        try:
            product.stock_quantity = int(data['stock_quantity'])
        except (TypeError, ValueError):
            raise ValidationError('Invalid stock quantity format', received=data['stock_quantity'])
    if data.get('category_id'):
        category = _category(data['category_id'])
        product.category_id = category.id
        product.category = category.name
    if 'offer_percentage' in data:
        product.offer_percentage = _offer(data.get('offer_percentage'))
    for field in TEXT_FIELDS:
        if data.get(field) is not None:
            setattr(product, field, data.get(field))
    if 'concerns' in data:
        product.set_concerns(_concerns(data))

    for index, field in enumerate(IMAGE_FIELDS, start=1):
        upload = request.files.get(f'image{index}')
        if upload:
            setattr(product, field, save_uploaded_file(upload))
        elif str(data.get(f'remove_image{index}')).lower() == 'true':
            remove_uploaded_file(getattr(product, field))
            setattr(product, field, None)
        elif data.get(f'existing_image{index}'):
            setattr(product, field, data.get(f'existing_image{index}'))

    db.session.commit()
    return jsonify(product.to_dict())


@bp.route('/<int:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    product = Product.query.get_or_404(product_id, description='Product not found')
    if product.order_items:
        raise Conflict('Cannot delete product with existing orders')

    for field in IMAGE_FIELDS:
        remove_uploaded_file(getattr(product, field))
    db.session.delete(product)
    db.session.commit()
    return jsonify({'message': 'Product deleted successfully'})


@bp.route('/<int:product_id>/reviews', methods=['POST'])
@login_required
def add_review(product_id):
    Product.query.get_or_404(product_id, description='Product not found')
    data = request.get_json(silent=True) or {}
    try:
        rating = int(data.get('rating'))
    except (TypeError, ValueError):
        rating = 0
    if rating < 1 or rating > 5:
        raise ValidationError('Rating must be between 1 and 5')

    if Review.query.filter_by(user_id=current_user.id, product_id=product_id).first():
        raise Conflict('You have already reviewed this product')

    review = Review(user_id=current_user.id, product_id=product_id,
                    rating=rating, comment=data.get('comment'))
    db.session.add(review)
    db.session.commit()
    return jsonify(review.to_dict())


@bp.route('/<int:product_id>/reviews', methods=['GET'])
def list_reviews(product_id):
    reviews = (Review.query.filter_by(product_id=product_id)
               .order_by(Review.created_at.desc()).all())
    return jsonify([review.to_dict() for review in reviews])
