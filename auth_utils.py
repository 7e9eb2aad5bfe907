import logging
import re
import secrets
import time
from datetime import datetime, timedelta
from functools import wraps

from flask import current_app, g
from flask_bcrypt import Bcrypt
from flask_login import LoginManager, current_user, login_required
from jose import JWTError, jwt

from errors import Forbidden, Unauthorized, ValidationError
from models import db, User

logger = logging.getLogger(__name__)

bcrypt = Bcrypt()
login_manager = LoginManager()

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
TOKEN_ALGORITHM = 'HS256'


class OTPError(ValidationError):
    pass


def generate_otp():
    return str(100000 + secrets.randbelow(900000))


class OTPStore:
    """One-time codes kept in process memory, keyed by email.

    Each entry is ``{'otp', 'timestamp', 'attempts'}``. Nothing sweeps old
    entries: expiry is only checked when a code is verified, so the store is
    only correct for a single-process deployment.
    """

    def __init__(self, ttl_seconds=600, max_attempts=3, clock=time.time):
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self.clock = clock
        self._entries = {}

    def __contains__(self, email):
        return email in self._entries

    def __len__(self):
        return len(self._entries)

    def get(self, email):
        return self._entries.get(email)

    def issue(self, email):
        otp = generate_otp()
        self._entries[email] = {'otp': otp, 'timestamp': self.clock(), 'attempts': 0}
        return otp

    def discard(self, email):
        self._entries.pop(email, None)

    def verify(self, email, otp):
        entry = self._entries.get(email)
        if entry is None:
            raise OTPError('Verification code expired or not requested')

        if self.clock() - entry['timestamp'] > self.ttl_seconds:
            self.discard(email)
            raise OTPError('Verification code expired')

        if entry['otp'] != str(otp).strip():
            entry['attempts'] += 1
            if entry['attempts'] >= self.max_attempts:
                self.discard(email)
                raise OTPError('Too many failed attempts. Please request a new code.')
            raise OTPError('Invalid verification code')
        return True


def get_otp_store():
    return current_app.extensions['otp_store']


def is_valid_email(email):
    return bool(email) and EMAIL_RE.match(email) is not None


def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def check_password(user, password):
    return bool(password) and bcrypt.check_password_hash(user.password_hash, password)


def create_token(user):
    expires = datetime.utcnow() + timedelta(hours=current_app.config['JWT_EXPIRES_HOURS'])
    claims = {
        'id': user.id,
        'role': user.role,
        'email': user.email,
        'name': user.name,
        'exp': expires,
    }
    return jwt.encode(claims, current_app.config['JWT_SECRET'], algorithm=TOKEN_ALGORITHM)


def decode_token(token):
    return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[TOKEN_ALGORITHM])


def user_from_token(token):
    """Return the user a token belongs to, or None when it does not verify."""
    try:
        claims = decode_token(token)
    except JWTError as e:
        logger.warning('Token verification failed: %s', e)
        return None
    user_id = claims.get('id')
    if user_id is None:
        return None
    return db.session.get(User, int(user_id))


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get('Authorization', '')
    if not header:
        return None
    token = header.replace('Bearer ', '', 1).strip()
    user = user_from_token(token) if token else None
    if user is None:
        g.auth_error = 'Invalid token'
    return user


@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthorized(g.get('auth_error', 'No token provided'))


def admin_required(f):
    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            raise Forbidden('Admin access required')
        return f(*args, **kwargs)
    return decorated
