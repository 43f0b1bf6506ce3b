"""Flask application factory."""
import os
import traceback

from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from storefront.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection for form posts; JSON API blueprints are exempted below
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'error': 'CSRF validation failed', 'message': e.description}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (store settings)
    from storefront.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from storefront.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy's forwarding headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    from storefront.middleware import load_user, require_json_body

    @app.before_request
    def before_request_handler():
        """Load the authenticated user for each request."""
        load_user()

    # Error Handlers
    from storefront.exceptions import StorefrontError

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"StorefrontError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"StorefrontError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'error': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code and error.code < 500:
            return jsonify({'error': error.name}), error.code
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'error': 'Internal Server Error'}), 500

    # Register blueprints
    from storefront.blueprints.orders import orders_bp
    from storefront.blueprints.cart import cart_bp
    from storefront.blueprints.coupons import coupons_bp
    from storefront.blueprints.inventory import inventory_bp
    from storefront.blueprints.settings import settings_bp
    from storefront.blueprints.admin_coupons import admin_coupons_bp
    from storefront.blueprints.metrics import metrics_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_coupons_bp)
    app.register_blueprint(metrics_bp)

    # The JSON API is exempt from form CSRF tokens; its POSTs must be application/json
    api_blueprints = (orders_bp, cart_bp, coupons_bp, inventory_bp, settings_bp, admin_coupons_bp)
    for api_bp in api_blueprints:
        csrf.exempt(api_bp)
    json_api = {api_bp.name for api_bp in api_blueprints}

    @app.before_request
    def json_api_handler():
        if request.blueprint in json_api:
            require_json_body()

    # Register CLI commands
    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
