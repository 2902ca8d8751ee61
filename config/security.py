# config/security.py
"""
Security Configuration for the Callback Relay
"""

import os


class SecurityConfig:
    """Security configuration settings"""

    # Rate limiting: one window shared by the whole service
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'moving-window'
    CALLBACK_RATE_LIMIT = '200 per hour'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_SCOPE_KEY = 'global'

    # Request bodies are small JSON forms
    MAX_CONTENT_LENGTH = 64 * 1024  # 64KB

    # Content Security Policy
    CSP_POLICY = {
        'default-src': "'self'",
        'base-uri': "'self'",
        'font-src': "'self' https: data:",
        'form-action': "'self'",
        'frame-ancestors': "'self'",
        'img-src': "'self' data:",
        'object-src': "'none'",
        'script-src': "'self'",
        'script-src-attr': "'none'",
        'style-src': "'self' https: 'unsafe-inline'",
        'upgrade-insecure-requests': '',
    }

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'X-XSS-Protection': '0',
        'X-DNS-Prefetch-Control': 'off',
        'X-Download-Options': 'noopen',
        'X-Permitted-Cross-Domain-Policies': 'none',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Referrer-Policy': 'no-referrer',
        'Cross-Origin-Opener-Policy': 'same-origin',
        'Cross-Origin-Resource-Policy': 'same-origin',
        'Origin-Agent-Cluster': '?1',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')
    SLOW_REQUEST_THRESHOLD = 1000  # ms

    @classmethod
    def content_security_policy(cls) -> str:
        return '; '.join(
            f"{directive} {value}".strip() for directive, value in cls.CSP_POLICY.items()
        )
