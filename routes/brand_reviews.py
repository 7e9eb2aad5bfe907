from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func, inspect

from errors import Conflict, NotFound, ValidationError
from models import db, BrandReview

bp = Blueprint('brand_reviews', __name__)


def _rating(data):
    try:
        rating = int(data.get('rating'))
    except (TypeError, ValueError):
        rating = 0
    if rating < 1 or rating > 5:
        raise ValidationError('Rating must be between 1 and 5')
    return rating


def _own_review(review_id):
    review = BrandReview.query.filter_by(id=review_id, user_id=current_user.id).first()
    if review is None:
        raise NotFound('Brand review not found', success=False)
    return review


@bp.route('/', methods=['GET'])
def list_brand_reviews():
    if not inspect(db.engine).has_table(BrandReview.__tablename__):
        return jsonify({'reviews': [], 'average_rating': 0, 'review_count': 0})

    reviews = BrandReview.query.order_by(BrandReview.created_at.desc()).all()
    average = db.session.query(func.avg(BrandReview.rating)).scalar()
    return jsonify({
        'reviews': [review.to_dict() for review in reviews],
        'average_rating': round(float(average or 0), 1),
        'review_count': len(reviews),
    })


@bp.route('/', methods=['POST'])
@login_required
def add_brand_review():
    data = request.get_json(silent=True) or {}
    rating = _rating(data)
    if BrandReview.query.filter_by(user_id=current_user.id).first():
        raise Conflict('You have already submitted a brand review', success=False)

    review = BrandReview(user_id=current_user.id, rating=rating, comment=data.get('comment'))
    db.session.add(review)
    db.session.commit()
    return jsonify({'success': True, 'review': review.to_dict()}), 201


@bp.route('/<int:review_id>', methods=['PUT'])
@login_required
def update_brand_review(review_id):
    data = request.get_json(silent=True) or {}
    review = _own_review(review_id)
    review.rating = _rating(data)
    if 'comment' in data:
        review.comment = data.get('comment')
    db.session.commit()
    return jsonify(review.to_dict())


@bp.route('/<int:review_id>', methods=['DELETE'])
@login_required
def delete_brand_review(review_id):
    review = _own_review(review_id)
    db.session.delete(review)
    db.session.commit()
    return jsonify({'success': True, 'message': 'Brand review deleted successfully'})
