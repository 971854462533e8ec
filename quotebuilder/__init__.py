"""Flask application factory."""
import logging

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from quotebuilder.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize CSRF protection
    CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload the page.', 'retryable': False}), 400

    # Flask-Mail for quote delivery
    from quotebuilder.services.email_service import init_mail
    init_mail(app)

    # Initialize database
    init_db(app)

    # Organization context before each request
    from quotebuilder.middleware import load_organization

    @app.before_request
    def before_request_handler():
        """Load organization context for each request."""
        load_organization()

    # Error Handlers
    from quotebuilder.exceptions import QuoteBuilderError

    @app.errorhandler(QuoteBuilderError)
    def handle_quote_builder_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"QuoteBuilderError [{error.status_code}] on {request.path}: {error.message}")
        else:
            app.logger.warning(f"QuoteBuilderError [{error.status_code}] on {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found', 'retryable': False}), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error', 'retryable': False}), 500

    # Register blueprints
    from quotebuilder.blueprints.catalog import catalog_bp
    from quotebuilder.blueprints.quotes import quotes_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(quotes_bp)

    # Register CLI commands
    from quotebuilder.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Quote builder ready (MAIL_SERVER={app.config.get('MAIL_SERVER')})")

    return app
