# app.py
"""
Flask Application Factory for the Callback Relay

Accepts callback request forms over HTTP and forwards them as email
notifications. The factory wires:
- Logging
- Delivery configuration loaded once from the environment or AWS Secrets Manager
- The mail dispatcher and its startup connectivity probe
- Security headers, CORS and the global rate limiter
- Error handlers, the health check and the callback API
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional

from flask import Flask, g, jsonify, request
from flask.logging import default_handler
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from api.callback import INTERNAL_ERROR_MESSAGE, init_callback_api
from config.delivery import DeliveryConfig, parse_bool
from config.security import SecurityConfig
from core.exceptions import ConfigurationError
from core.mail_dispatcher import MailDispatcher
from middleware.security import init_cors, init_rate_limiting, security_headers
from services.secrets import load_delivery_config

logger = logging.getLogger(__name__)

# Loggers of the relay's own packages
PACKAGE_LOGGERS = ('api', 'config', 'core', 'middleware', 'services')
RELAY_HANDLER_NAME = 'callback-relay'


def setup_logging(app: Flask) -> None:
    """
    Configure logging for the application and its packages

    Logs go to stderr; LOG_FILE adds a rotating file handler. Records still
    propagate to the root logger.
    """
    formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-24s %(levelname)-8s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    log_file = app.config.get('LOG_FILE')
    if log_file:
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        ))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        handler.set_name(RELAY_HANDLER_NAME)

    app.logger.removeHandler(default_handler)

    targets = [app.logger] + [logging.getLogger(name) for name in PACKAGE_LOGGERS + (__name__,)]
    for target in targets:
        # Drop handlers installed by an earlier create_app call
        for existing in list(target.handlers):
            if existing.get_name() == RELAY_HANDLER_NAME:
                target.removeHandler(existing)
                existing.close()
        target.setLevel(log_level)
        for handler in handlers:
            target.addHandler(handler)

    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)


def configure_dispatcher(app: Flask, config: DeliveryConfig,
                         dispatcher: Optional[MailDispatcher] = None) -> MailDispatcher:
    """
    Build the mail dispatcher and run the startup probe

    The probe is advisory: a relay that is down at startup is logged and the
    service still starts.
    """
    dispatcher = dispatcher or MailDispatcher(config)

    if config.verify_on_startup:
        dispatcher.verify()
    else:
        app.logger.info("Mail transporter probe skipped")

    return dispatcher


def configure_error_handlers(app: Flask) -> None:
    """
    Map HTTP errors and unexpected exceptions to JSON responses
    """
    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return jsonify({'success': False, 'error': 'Bad request'}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        app.logger.warning(f"Oversized request from {request.remote_addr}")
        return jsonify({'success': False, 'error': 'Payload too large'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify({'success': False, 'error': INTERNAL_ERROR_MESSAGE}), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return e

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({'success': False, 'error': INTERNAL_ERROR_MESSAGE}), 500


def configure_health_checks(app: Flask, limiter) -> None:
    """
    Health check endpoint; independent of the dispatcher and the rate limiter
    """
    @app.route('/health')
    @limiter.exempt
    def health_check():
        return jsonify({'ok': True})


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        g.start_time = datetime.now()

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.now() - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(delivery_config: Optional[DeliveryConfig] = None,
               dispatcher: Optional[MailDispatcher] = None,
               config_overrides: Optional[dict] = None) -> Flask:
    """
    Flask application factory

    Args:
        delivery_config: Preloaded delivery configuration; loaded from the
                         configured secret source when omitted
        dispatcher: Mail dispatcher to use instead of one built from the config
        config_overrides: Extra Flask config values (applied last)

    Returns:
        Configured Flask application instance

    Raises:
        ConfigurationError: when the delivery configuration cannot be loaded
    """
    app = Flask(__name__)

    app.config.from_object(SecurityConfig)
    app.config.update({
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', SecurityConfig.LOG_LEVEL),
        'LOG_FILE': os.environ.get('LOG_FILE', SecurityConfig.LOG_FILE),
        'RATELIMIT_STORAGE_URI': os.environ.get('RATELIMIT_STORAGE_URI', SecurityConfig.RATELIMIT_STORAGE_URI),
        'TRUST_PROXY': parse_bool(os.environ.get('TRUST_PROXY')),
    })
    app.config.update(config_overrides or {})

    if app.config.get('TRUST_PROXY'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app)

    # Fatal on failure: no listener is bound without a usable configuration
    delivery_config = delivery_config or load_delivery_config()
    app.config['DELIVERY'] = delivery_config

    dispatcher = configure_dispatcher(app, delivery_config, dispatcher)

    limiter = init_rate_limiting(app)
    app.extensions['callback_limiter'] = limiter
    init_cors(app, delivery_config)

    init_callback_api(app, dispatcher)
    configure_error_handlers(app)
    configure_health_checks(app, limiter)
    configure_request_middleware(app)

    app.logger.info("Callback relay application created")
    return app


def main() -> None:
    """Development server entry point"""
    try:
        app = create_app()
    except ConfigurationError as e:
        logger.error(f"Startup aborted, delivery configuration unavailable: {e}")
        sys.exit(1)

    port = app.config['DELIVERY'].listen_port
    app.logger.info(f"Server running on port {port}")
    app.run(host='0.0.0.0', port=port, threaded=True)


if __name__ == '__main__':
    main()
