import logging
import os

import click
from dotenv import load_dotenv
from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_sock import Sock
from sqlalchemy import text

from auth_utils import OTPStore, bcrypt, hash_password, login_manager
from errors import register_error_handlers
from models import db, Category, User
from realtime_utils import ConnectionRegistry, serve_connection
from routes import register_blueprints

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

DEFAULT_CATEGORIES = (
    ('Skincare', 'Products for skin care and maintenance',
     ('Face Creams', 'Serums', 'Cleansers', 'Masks', 'Sunscreen')),
    ('Makeup', 'Cosmetic products for beauty enhancement',
     ('Lipstick', 'Foundation', 'Eye Makeup', 'Blush', 'Brushes')),
    ('Haircare', 'Products for hair care and styling',
     ('Shampoo', 'Conditioner', 'Hair Oils', 'Hair Masks', 'Styling Products')),
    ('Fragrances', 'Perfumes and body sprays',
     ("Women's Perfume", "Men's Cologne", 'Body Mists', 'Gift Sets')),
    ('Bath & Body', 'Body care and bathing products',
     ('Body Wash', 'Lotions', 'Scrubs', 'Hand Care', 'Body Oils')),
)


def _flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


def load_config(app):
    # Vercel only allows writes under /tmp
    is_vercel = os.environ.get('VERCEL_ENV') is not None
    data_dir = '/tmp' if is_vercel else BASE_DIR
    secret_key = os.environ.get('SECRET_KEY', 'your-super-secret-key-change-this')

    app.config.update(
        SECRET_KEY=secret_key,
        JWT_SECRET=os.environ.get('JWT_SECRET', secret_key),
        JWT_EXPIRES_HOURS=int(os.environ.get('JWT_EXPIRES_HOURS', 24)),
        SQLALCHEMY_DATABASE_URI=os.environ.get(
            'DATABASE_URL', 'sqlite:////tmp/shop.db' if is_vercel else 'sqlite:///shop.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        RAZORPAY_KEY_ID=os.environ.get('RAZORPAY_KEY_ID'),
        RAZORPAY_KEY_SECRET=os.environ.get('RAZORPAY_KEY_SECRET'),
        PAYMENT_CURRENCY=os.environ.get('PAYMENT_CURRENCY', 'INR'),
        MAIL_SERVER=os.environ.get('MAIL_SERVER', 'smtp.gmail.com'),
        MAIL_PORT=int(os.environ.get('MAIL_PORT', 587)),
        MAIL_USERNAME=os.environ.get('MAIL_USERNAME'),
        MAIL_PASSWORD=os.environ.get('MAIL_PASSWORD'),
        MAIL_SENDER_NAME=os.environ.get('MAIL_SENDER_NAME', 'Saranga Ayurveda'),
        MAIL_ENABLED=_flag('MAIL_ENABLED', 'true'),
        UPLOAD_FOLDER=os.environ.get('UPLOAD_FOLDER', os.path.join(data_dir, 'uploads')),
        REPORT_FOLDER=os.environ.get('REPORT_FOLDER', os.path.join(data_dir, 'reports')),
        MAX_CONTENT_LENGTH=5 * 1024 * 1024,
        ALLOWED_IMAGE_EXTENSIONS={'jpg', 'jpeg', 'png', 'gif'},
        WS_REQUIRE_TOKEN=_flag('WS_REQUIRE_TOKEN', 'false'),
        OTP_TTL_SECONDS=int(os.environ.get('OTP_TTL_SECONDS', 600)),
        OTP_MAX_ATTEMPTS=int(os.environ.get('OTP_MAX_ATTEMPTS', 3)),
        ADMIN_EMAIL=os.environ.get('ADMIN_EMAIL', 'admin@saranga.com'),
        ADMIN_PASSWORD=os.environ.get('ADMIN_PASSWORD', 'admin123'),
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),
    )


def create_app(test_config=None):
    app = Flask(__name__)
    load_config(app)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)

    app.extensions['otp_store'] = OTPStore(
        ttl_seconds=app.config['OTP_TTL_SECONDS'],
        max_attempts=app.config['OTP_MAX_ATTEMPTS'],
    )
    app.extensions['realtime'] = ConnectionRegistry()

    for folder in (app.config['UPLOAD_FOLDER'], app.config['REPORT_FOLDER']):
        os.makedirs(folder, exist_ok=True)

    app.url_map.strict_slashes = False
    register_error_handlers(app)
    register_blueprints(app)
    register_commands(app)

    sock = Sock(app)

    @sock.route('/ws')
    def realtime(ws):
        serve_connection(ws)

    @app.before_request
    def log_request():
        current_app.logger.info('%s %s', request.method, request.path)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'message': 'Server is running'})

    @app.route('/api/test-db')
    def test_db():
        now = db.session.execute(text('SELECT CURRENT_TIMESTAMP')).scalar()
        return jsonify({'message': 'Database connection successful', 'timestamp': str(now)})

    @app.route('/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

    return app


# ========== seed data ==========
def create_admin(email, password, name='Admin User'):
    """Create the admin account unless the email is taken. Returns True when created."""
    if User.query.filter_by(email=email).first():
        return False
    admin = User(email=email, name=name, password_hash=hash_password(password),
                 role='admin', is_verified=True)
    db.session.add(admin)
    db.session.commit()
    return True


def seed_categories():
    """Insert the default category tree, skipping names that already exist."""
    added = 0
    for name, description, children in DEFAULT_CATEGORIES:
        parent = Category.query.filter_by(name=name).first()
        if parent is None:
            parent = Category(name=name, description=description)
            db.session.add(parent)
            db.session.flush()
            added += 1
        for child in children:
            if Category.query.filter_by(name=child).first() is None:
                db.session.add(Category(name=child, description=f'{child} in {name}',
                                        parent_id=parent.id))
                added += 1
    db.session.commit()
    return added


def register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo('Database tables created')

    @app.cli.command('create-admin')
    def create_admin_command():
        """Create the admin user from ADMIN_EMAIL / ADMIN_PASSWORD."""
        email = current_app.config['ADMIN_EMAIL']
        if create_admin(email, current_app.config['ADMIN_PASSWORD']):
            click.echo(f'Admin user created: {email}')
        else:
            click.echo('Admin user already exists')

    @app.cli.command('seed-categories')
    def seed_categories_command():
        """Insert the default category tree."""
        added = seed_categories()
        click.echo(f'Categories seeded ({added} added)')


if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        db.create_all()
        create_admin(app.config['ADMIN_EMAIL'], app.config['ADMIN_PASSWORD'])
        seed_categories()
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=_flag('FLASK_DEBUG', 'false'))
