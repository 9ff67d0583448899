"""
app.py — Flask entry point for the medicinal plant catalog.

Initializes the Flask app, loads configuration from the environment,
creates the catalog schema on startup, registers the public and admin
blueprints and maps catalog errors to JSON responses.

Run: python app.py → localhost:5000
"""

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect

from catalog_store import init_catalog_db
from config import load_config
from errors import CatalogError
from logging_config import get_logger
from routes.admin import admin_bp
from routes.catalog import catalog_bp

logger = get_logger(__name__)


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    config = load_config()
    app.config.update(config)
    app.secret_key = config['SECRET_KEY']
    app.config['WTF_CSRF_CHECK_DEFAULT'] = True
    app.json.ensure_ascii = False

    if test_config:
        app.config.update(test_config)

    CSRFProtect(app)

    # Initialize the catalog database
    with app.app_context():
        init_catalog_db()

    # Register blueprints
    # Admin writes carry the token from GET /admin/session in X-CSRFToken
    app.register_blueprint(catalog_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(CatalogError)
    def handle_catalog_error(error):
        """Turn any catalog failure into {'success': False, 'error': ...}."""
        if error.status_code >= 500:
            logger.error("%s: %s", type(error).__name__, error.message)
        return jsonify({'success': False, 'error': error.message}), error.status_code

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(host='localhost', port=5000, debug=app.config['DEBUG_MODE'])
