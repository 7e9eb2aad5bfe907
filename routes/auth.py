from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

import email_utils
from auth_utils import check_password, create_token, get_otp_store, hash_password, is_valid_email
from errors import APIError, Conflict, ValidationError
from models import db, User

bp = Blueprint('auth', __name__)


def _issue_otp(email):
    """Store a fresh code for ``email`` and mail it; the code is dropped if mailing fails."""
    store = get_otp_store()
    otp = store.issue(email)
    if not email_utils.send_otp_email(email, otp):
        store.discard(email)
        raise APIError('Failed to send verification code', 500)
    return otp


@bp.route('/request-signup-otp', methods=['POST'])
def request_signup_otp():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()

    if not email:
        raise ValidationError('Email is required')
    if not is_valid_email(email):
        raise ValidationError('Invalid email format', received=email)
    if User.query.filter_by(email=email).first():
        raise Conflict('User already exists')

    _issue_otp(email)
    current_app.logger.info('Signup code sent to %s', email)
    return jsonify({'message': 'Verification code sent to your email', 'email': email})


@bp.route('/verify-signup-otp', methods=['POST'])
def verify_signup_otp():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    otp = data.get('otp')
    name = data.get('name')
    password = data.get('password')

    if not (email and otp and name and password):
        raise ValidationError('All fields are required')

    store = get_otp_store()
    store.verify(email, otp)
    if User.query.filter_by(email=email).first():
        store.discard(email)
        raise Conflict('User already exists')

    user = User(email=email, name=name, password_hash=hash_password(password),
                role='customer', is_verified=True)
    db.session.add(user)
    db.session.commit()
    store.discard(email)

    if not email_utils.send_welcome_email(email, name):
        current_app.logger.warning('Welcome email to %s was not delivered', email)

    return jsonify({
        'token': create_token(user),
        'message': 'Email verified and registration completed successfully',
    })


@bp.route('/verify-email', methods=['POST'])
def verify_email():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    otp = data.get('otp')
    if not (email and otp):
        raise ValidationError('Email and verification code are required')

    user = User.query.filter_by(email=email).first()
    if user is None:
        raise ValidationError('User not found')

    store = get_otp_store()
    store.verify(email, otp)
    user.is_verified = True
    db.session.commit()
    store.discard(email)
    return jsonify({'token': create_token(user), 'message': 'Email verified successfully'})


@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password')

    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not check_password(user, password):
        raise ValidationError('Invalid credentials')

    # admins never go through email verification
    if not user.is_admin and not user.is_verified:
        _issue_otp(email)
        raise ValidationError(
            'Email not verified. A new verification code has been sent to your email.',
            needsVerification=True,
        )

    return jsonify({'token': create_token(user)})


@bp.route('/resend-otp', methods=['POST'])
def resend_otp():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    if not email:
        raise ValidationError('Email is required')
    if not User.query.filter_by(email=email).first():
        raise ValidationError('User not found')

    _issue_otp(email)
    return jsonify({'message': 'Verification code resent to your email', 'email': email})


@bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify(current_user.to_dict())
