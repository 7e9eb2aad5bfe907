from sqlalchemy import distinct, func, inspect, literal, or_
from sqlalchemy.orm import aliased

from errors import ValidationError
from models import db, Category, Product, ProductConcern, Review


def reviews_available():
    """The catalog still serves products when the reviews table is missing."""
    return inspect(db.engine).has_table(Review.__tablename__)


def split_list(value):
    if not value:
        return []
    return [part.strip().lower() for part in value.split(',') if part.strip()]


def _number(value, name, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {name}', received=value)


def product_query(with_reviews=None):
    """Products joined to their category, parent category and rating aggregate.

    Rows are ``(Product, category_name, parent_category_name, average_rating,
    review_count)``.
    """
    if with_reviews is None:
        with_reviews = reviews_available()

    parent = aliased(Category)
    if with_reviews:
        average = func.coalesce(func.avg(Review.rating), 0)
        count = func.count(distinct(Review.id))
    else:
        average = literal(0)
        count = literal(0)

    query = (db.session.query(Product, Category.name, parent.name,
                              average.label('average_rating'), count.label('review_count'))
             .outerjoin(Category, Product.category_id == Category.id)
             .outerjoin(parent, Category.parent_id == parent.id))
    if with_reviews:
        query = query.outerjoin(Review, Review.product_id == Product.id)
    return query.group_by(Product.id, Category.name, parent.name), parent


def apply_filters(query, parent, args):
    category = args.get('category')
    if category:
        query = query.filter(or_(func.lower(Category.name) == category.lower(),
                                 func.lower(parent.name) == category.lower()))

    category_id = args.get('category_id')
    if category_id:
        query = query.filter(Product.category_id == _number(category_id, 'category_id', int))

    search = args.get('search')
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            func.coalesce(Product.ingredients, '').ilike(pattern),
            func.coalesce(Product.benefits, '').ilike(pattern),
            func.coalesce(Product.product_details, '').ilike(pattern),
        ))

    min_price = args.get('min_price')
    if min_price not in (None, ''):
        query = query.filter(Product.price >= _number(min_price, 'min_price'))

    max_price = args.get('max_price')
    if max_price not in (None, ''):
        query = query.filter(Product.price <= _number(max_price, 'max_price'))

    product_types = split_list(args.get('product_types'))
    if product_types:
        query = query.filter(func.lower(Product.product_type).in_(product_types))

    skin_types = split_list(args.get('skin_types'))
    if skin_types:
        query = query.filter(func.lower(Product.skin_type).in_(skin_types))

    concerns = split_list(args.get('concerns'))
    if concerns:
        query = query.filter(Product.concerns.any(func.lower(ProductConcern.name).in_(concerns)))

    return query


def serialize_row(row):
    product, category_name, parent_category_name, average_rating, review_count = row
    data = product.to_dict()
    data.update({
        'category_name': category_name,
        'parent_category_name': parent_category_name,
        'average_rating': round(float(average_rating or 0), 2),
        'review_count': int(review_count or 0),
    })
    return data


def list_products(args):
    page = max(_number(args.get('page', 1), 'page', int), 1)
    limit = max(_number(args.get('limit', 10), 'limit', int), 1)

    query, parent = product_query()
    query = apply_filters(query, parent, args)
    total = query.order_by(None).count()
    rows = (query.order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit).offset((page - 1) * limit).all())

    return {
        'products': [serialize_row(row) for row in rows],
        'total': total,
        'page': page,
        'limit': limit,
    }


def get_product_detail(product_id):
    with_reviews = reviews_available()
    query, _ = product_query(with_reviews)
    row = query.filter(Product.id == product_id).first()
    if row is None:
        return None

    data = serialize_row(row)
    if with_reviews:
        reviews = (Review.query.filter_by(product_id=product_id)
                   .order_by(Review.created_at.desc()).all())
        data['reviews'] = [review.to_dict() for review in reviews]
    else:
        data['reviews'] = []
    return data
