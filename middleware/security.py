# middleware/security.py
"""
Security Middleware for Request Processing
"""

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.errors import RateLimitExceeded

from config.delivery import DeliveryConfig
from config.security import SecurityConfig

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = 'Too many requests, try again later.'


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in SecurityConfig.SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    response.headers.setdefault('Content-Security-Policy', SecurityConfig.content_security_policy())
    response.headers.pop('X-Powered-By', None)

    return response


def global_rate_limit_key() -> str:
    """Every caller shares one bucket; the window caps total throughput"""
    return SecurityConfig.RATELIMIT_SCOPE_KEY


def rate_limit_exceeded(error: RateLimitExceeded):
    logger.warning(f"Global rate limit exceeded ({error.description}) "
                   f"by {request.remote_addr} on {request.method} {request.path}")
    return jsonify({'success': False, 'error': RATE_LIMIT_MESSAGE}), 429


def init_rate_limiting(app: Flask) -> Limiter:
    """
    Configure the process-wide request limiter

    CALLBACK_RATE_LIMIT is an application limit: one counter shared by every
    route and every caller. Flask-Limiter reads storage, strategy and headers
    from the RATELIMIT_* app config.
    """
    limiter = Limiter(
        global_rate_limit_key,
        app=app,
        application_limits=[app.config.get('CALLBACK_RATE_LIMIT', SecurityConfig.CALLBACK_RATE_LIMIT)],
    )
    app.register_error_handler(RateLimitExceeded, rate_limit_exceeded)
    return limiter


def init_cors(app: Flask, config: DeliveryConfig) -> None:
    """Only the configured frontend origin may call the API from a browser"""
    CORS(app,
         origins=[config.allowed_origin],
         methods=['GET', 'POST', 'OPTIONS'],
         allow_headers=['Content-Type'])
    logger.info(f"CORS restricted to {config.allowed_origin}")
