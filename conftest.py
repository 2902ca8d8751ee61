from unittest.mock import MagicMock

import pytest

from app import create_app
from config.delivery import DeliveryConfig
from core.mail_dispatcher import MailDispatcher


@pytest.fixture
def delivery_config():
    return DeliveryConfig(
        host='smtp.example.com',
        port=465,
        secure=True,
        username='relay@example.com',
        password='secret',
        sender='relay@example.com',
        receiver='sales@example.com',
        allowed_origin='https://www.example.com',
        timeout=5.0,
        verify_on_startup=False,
    )


@pytest.fixture
def dispatcher():
    return MagicMock(spec=MailDispatcher)


@pytest.fixture
def app(delivery_config, dispatcher):
    return create_app(delivery_config, dispatcher, config_overrides={'TESTING': True})


@pytest.fixture
def client(app):
    return app.test_client()
