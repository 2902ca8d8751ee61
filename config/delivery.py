# config/delivery.py
"""
Delivery Configuration for the Callback Relay
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from email_validator import validate_email, EmailNotValidError

from core.exceptions import ConfigurationError

DEFAULT_SMTP_PORT = 465
DEFAULT_ALLOWED_ORIGIN = 'http://localhost:5173'
DEFAULT_LISTEN_PORT = 5000
DEFAULT_TIMEOUT = 10.0
DEFAULT_SENDER_NAME = 'Website Callback'

TRUE_VALUES = {'true', '1', 'yes', 'on'}


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def _parse_int(values: Mapping[str, Any], key: str, default: int) -> int:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


def _parse_float(values: Mapping[str, Any], key: str, default: float) -> float:
    raw = values.get(key)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def _check_address(key: str, address: str) -> str:
    try:
        validate_email(address, check_deliverability=False)
    except EmailNotValidError as e:
        raise ConfigurationError(f"{key} is not a valid email address: {str(e)}")
    return address


@dataclass(frozen=True)
class DeliveryConfig:
    """Credentials, addresses and ports needed to send notifications"""
    host: str
    receiver: str
    sender: str
    port: int = DEFAULT_SMTP_PORT
    secure: bool = False
    username: Optional[str] = None
    password: Optional[str] = None
    sender_name: str = DEFAULT_SENDER_NAME
    allowed_origin: str = DEFAULT_ALLOWED_ORIGIN
    listen_port: int = DEFAULT_LISTEN_PORT
    timeout: float = DEFAULT_TIMEOUT
    retry_once: bool = False
    verify_on_startup: bool = True

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> 'DeliveryConfig':
        """
        Build the configuration from environment-style keys

        Args:
            values: Mapping of SMTP_*, CONTACT_RECEIVER_EMAIL, FRONTEND_ORIGIN
                    and PORT keys

        Raises:
            ConfigurationError: when a required key is missing or a value is invalid
        """
        host = (values.get('SMTP_HOST') or '').strip()
        if not host:
            raise ConfigurationError('SMTP_HOST is not configured')

        receiver = (values.get('CONTACT_RECEIVER_EMAIL') or '').strip()
        if not receiver:
            raise ConfigurationError('CONTACT_RECEIVER_EMAIL is not configured')

        username = values.get('SMTP_USER') or None
        sender = (values.get('SMTP_FROM') or username or '').strip()
        if not sender:
            raise ConfigurationError('Neither SMTP_FROM nor SMTP_USER is configured')

        return cls(
            host=host,
            receiver=_check_address('CONTACT_RECEIVER_EMAIL', receiver),
            sender=_check_address('SMTP_FROM', sender),
            port=_parse_int(values, 'SMTP_PORT', DEFAULT_SMTP_PORT),
            secure=parse_bool(values.get('SMTP_SECURE')),
            username=username,
            password=values.get('SMTP_PASS') or None,
            sender_name=values.get('SMTP_FROM_NAME') or DEFAULT_SENDER_NAME,
            allowed_origin=values.get('FRONTEND_ORIGIN') or DEFAULT_ALLOWED_ORIGIN,
            listen_port=_parse_int(values, 'PORT', DEFAULT_LISTEN_PORT),
            timeout=_parse_float(values, 'SMTP_TIMEOUT', DEFAULT_TIMEOUT),
            retry_once=parse_bool(values.get('SMTP_RETRY_ONCE')),
            verify_on_startup=parse_bool(values.get('SMTP_VERIFY_ON_STARTUP'), default=True),
        )

    def __repr__(self) -> str:
        # Keep credentials out of logs
        return (f"DeliveryConfig(host={self.host!r}, port={self.port}, secure={self.secure}, "
                f"sender={self.sender!r}, receiver={self.receiver!r}, "
                f"allowed_origin={self.allowed_origin!r})")
