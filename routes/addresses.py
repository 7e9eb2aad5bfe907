from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from errors import NotFound, ValidationError
from models import db, transaction, Address
from order_utils import REQUIRED_SHIPPING_FIELDS

bp = Blueprint('addresses', __name__)

EDITABLE_FIELDS = Address.SHIPPING_FIELDS + ('address_type',)


def _own_address(address_id):
    address = Address.query.filter_by(id=address_id, user_id=current_user.id).first()
    if address is None:
        raise NotFound('Address not found')
    return address


def _unset_defaults(user_id, keep=None):
    Address.query.filter(Address.user_id == user_id, Address.id != keep).update(
        {'is_default': False}, synchronize_session=False)


@bp.route('/', methods=['GET'])
@login_required
def list_addresses():
    addresses = (Address.query.filter_by(user_id=current_user.id)
                 .order_by(Address.is_default.desc(), Address.created_at.desc())
                 .all())
    return jsonify([address.to_dict() for address in addresses])


@bp.route('/', methods=['POST'])
@login_required
def add_address():
    data = request.get_json(silent=True) or {}
    if any(not data.get(field) for field in REQUIRED_SHIPPING_FIELDS):
        raise ValidationError('Missing required fields', required=list(REQUIRED_SHIPPING_FIELDS))

    with transaction():
        is_default = bool(data.get('is_default'))
        if is_default:
            _unset_defaults(current_user.id)
        if Address.query.filter_by(user_id=current_user.id).count() == 0:
            is_default = True

        address = Address(
            user_id=current_user.id,
            full_name=data['full_name'],
            phone_number=data['phone_number'],
            address_line1=data['address_line1'],
            address_line2=data.get('address_line2') or None,
            city=data['city'],
            state=data['state'],
            postal_code=data['postal_code'],
            country=data.get('country') or 'India',
            address_type=data.get('address_type') or 'Home',
            is_default=is_default,
        )
        db.session.add(address)

    return jsonify(address.to_dict())


@bp.route('/<int:address_id>', methods=['PUT'])
@login_required
def update_address(address_id):
    data = request.get_json(silent=True) or {}
    with transaction():
        address = _own_address(address_id)
        for field in EDITABLE_FIELDS:
            if data.get(field) is not None:
                setattr(address, field, data[field])
        if data.get('is_default') and not address.is_default:
            _unset_defaults(current_user.id, keep=address.id)
            address.is_default = True

    return jsonify(address.to_dict())


@bp.route('/<int:address_id>', methods=['DELETE'])
@login_required
def delete_address(address_id):
    with transaction():
        address = _own_address(address_id)
        was_default = address.is_default
        db.session.delete(address)
        db.session.flush()
        if was_default:
            replacement = (Address.query.filter_by(user_id=current_user.id)
                           .order_by(Address.created_at.desc()).first())
            if replacement:
                replacement.is_default = True

    current_app.logger.info('Address %s deleted by user %s', address_id, current_user.id)
    return jsonify({'message': 'Address deleted successfully'})


@bp.route('/<int:address_id>/default', methods=['PUT'])
@login_required
def set_default(address_id):
    with transaction():
        address = _own_address(address_id)
        _unset_defaults(current_user.id, keep=address.id)
        address.is_default = True

    return jsonify(address.to_dict())
