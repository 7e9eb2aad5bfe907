from flask import Blueprint, jsonify
from sqlalchemy import func
from sqlalchemy.orm import aliased

from models import db, Category, Product

bp = Blueprint('categories', __name__)


def category_rows():
    """All categories with their parent's name and product count, by name."""
    parent = aliased(Category)
    rows = (db.session.query(Category, parent.name, func.count(Product.id))
            .outerjoin(parent, Category.parent_id == parent.id)
            .outerjoin(Product, Product.category_id == Category.id)
            .group_by(Category.id, parent.name)
            .order_by(Category.name)
            .all())
    result = []
    for category, parent_name, product_count in rows:
        data = category.to_dict()
        data['parent_name'] = parent_name
        data['product_count'] = product_count
        result.append(data)
    return result


@bp.route('/', methods=['GET'])
def list_categories():
    return jsonify(category_rows())


@bp.route('/<int:category_id>', methods=['GET'])
def category_detail(category_id):
    category = Category.query.get_or_404(category_id, description='Category not found')
    data = category.to_dict()
    data['products'] = [product.to_dict() for product in category.products]
    return jsonify(data)
