from routes.addresses import bp as addresses_bp
from routes.admin import bp as admin_bp
from routes.auth import bp as auth_bp
from routes.brand_reviews import bp as brand_reviews_bp
from routes.cart import bp as cart_bp
from routes.categories import bp as categories_bp
from routes.coupons import bp as coupons_bp
from routes.orders import bp as orders_bp
from routes.payments import bp as payments_bp
from routes.products import bp as products_bp
from routes.razorpay_gateway import bp as razorpay_bp
from routes.users import bp as users_bp
from routes.wishlist import bp as wishlist_bp

BLUEPRINTS = (
    (auth_bp, '/api/auth'),
    (products_bp, '/api/products'),
    (categories_bp, '/api/categories'),
    (addresses_bp, '/api/addresses'),
    (brand_reviews_bp, '/api/brand-reviews'),
    (coupons_bp, '/api/coupons'),
    (payments_bp, '/api/payments'),
    (razorpay_bp, '/api/razorpay'),
    (cart_bp, '/api/cart'),
    (admin_bp, '/api/admin'),
    (orders_bp, '/api/orders'),
    (wishlist_bp, '/api/wishlist'),
    (users_bp, '/api/users'),
)


def register_blueprints(app):
    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)
