"""Flask extensions initialization (Limiter, MongoDB teardown)."""
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from . import db

# A kiosk sits behind a single address, so limits stay generous and only
# the creation endpoint is limited explicitly
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    headers_enabled=True,
)


def init_extensions(app):
    """Initialize Flask extensions with app context.

    Args:
        app: Flask application instance
    """
    limiter.init_app(app)

    # Initialize MongoDB connection handling using db module
    db.init_app(app)
