"""Flask application factory and initialization."""
import logging

from flask import Flask, jsonify
from backend.app.config import Config
from backend.app.extensions import init_extensions
from backend.app import db
from backend.app.kiosk.qr_codes import missing_qr_assets

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    """Create and configure the Flask application.

    Args:
        config_class: Configuration class to use

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Flask extensions (rate limiter, MongoDB teardown and indexes)
    init_extensions(app)

    @app.route('/api/health')
    def health_check():
        """Health check endpoint with database connectivity."""
        response = {
            "status": "ok",
            "service": "kiosk-registration-api"
        }

        db_health = db.health_check()
        response["database"] = db_health
        if db_health.get('status') != 'healthy':
            response["status"] = "degraded"

        return jsonify(response)

    register_blueprints(app)

    # The confirmation screen shows these images; they are not part of the package
    for path in missing_qr_assets(app.static_folder):
        logger.warning("QR asset %s is missing from %s", path, app.static_folder)

    # The kiosk front end may be served from another origin
    @app.after_request
    def after_request(response):
        """Add CORS headers to all responses."""
        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Idempotency-Key'
        return response

    logger.info("Kiosk registration app created (database=%s)", app.config.get('MONGO_DB'))
    return app


def register_blueprints(app):
    """Register Flask blueprints with the application.

    Args:
        app: Flask application instance
    """
    # Import blueprints here to avoid circular imports
    from backend.app.blueprints.api.registrations.routes import registrations_bp
    from backend.app.blueprints.web.routes import web_bp

    app.register_blueprint(registrations_bp, url_prefix='/api/registrations')

    # Kiosk screens (no prefix)
    app.register_blueprint(web_bp)
