import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from core.exceptions import DispatchError
from core.mail_dispatcher import MailDispatcher


@pytest.fixture
def smtp():
    """Patched aiosmtplib.SMTP class; the instance is smtp.return_value"""
    with patch('core.mail_dispatcher.aiosmtplib.SMTP') as smtp_class:
        instance = smtp_class.return_value
        instance.connect = AsyncMock()
        instance.login = AsyncMock()
        instance.send_message = AsyncMock()
        instance.quit = AsyncMock()
        yield smtp_class


def sent_message(smtp):
    return smtp.return_value.send_message.await_args.args[0]


def test_deliver_sends_one_message(smtp, delivery_config):
    MailDispatcher(delivery_config).deliver('Callback Request (Home) — Ann', '<p>hi</p>', 'hi')

    smtp.assert_called_once_with(
        hostname='smtp.example.com', port=465, timeout=5.0, use_tls=True, start_tls=False)
    instance = smtp.return_value
    instance.login.assert_awaited_once_with('relay@example.com', 'secret')
    instance.send_message.assert_awaited_once()
    instance.quit.assert_awaited_once()

    msg = sent_message(smtp)
    assert msg['Subject'] == 'Callback Request (Home) — Ann'
    assert msg['To'] == 'sales@example.com'
    assert msg['From'] == 'Website Callback <relay@example.com>'
    assert msg['Message-ID'].endswith('@example.com>')
    assert [part.get_content_type() for part in msg.get_payload()] == ['text/plain', 'text/html']


def test_recipient_override(smtp, delivery_config):
    MailDispatcher(delivery_config).deliver('subject', '<p>hi</p>', recipient='ops@example.com')

    msg = sent_message(smtp)
    assert msg['To'] == 'ops@example.com'
    assert [part.get_content_type() for part in msg.get_payload()] == ['text/html']


def test_no_login_without_credentials(smtp, delivery_config):
    config = replace(delivery_config, username=None, password=None, secure=False, port=587)
    MailDispatcher(config).deliver('subject', '<p>hi</p>')

    smtp.assert_called_once_with(
        hostname='smtp.example.com', port=587, timeout=5.0, use_tls=False, start_tls=None)
    smtp.return_value.login.assert_not_awaited()
    smtp.return_value.send_message.assert_awaited_once()


def test_relay_rejection_raises_dispatch_error(smtp, delivery_config):
    smtp.return_value.send_message.side_effect = aiosmtplib.SMTPResponseException(550, 'Mailbox unavailable')

    with pytest.raises(DispatchError) as excinfo:
        MailDispatcher(delivery_config).deliver('subject', '<p>hi</p>')

    assert excinfo.value.code == 550
    assert excinfo.value.transient is False
    assert 'Mailbox unavailable' in str(excinfo.value)
    smtp.return_value.close.assert_called_once()


def test_connection_failure_raises_dispatch_error(smtp, delivery_config):
    smtp.return_value.connect.side_effect = aiosmtplib.SMTPConnectError('Connection refused')

    with pytest.raises(DispatchError) as excinfo:
        MailDispatcher(delivery_config).deliver('subject', '<p>hi</p>')

    assert excinfo.value.transient is True
    smtp.return_value.send_message.assert_not_awaited()


def test_socket_error_raises_dispatch_error(smtp, delivery_config):
    smtp.return_value.connect.side_effect = ConnectionResetError('reset by peer')

    with pytest.raises(DispatchError):
        MailDispatcher(delivery_config).deliver('subject', '<p>hi</p>')


def test_timeout_raises_dispatch_error(smtp, delivery_config):
    async def stall(*args, **kwargs):
        await asyncio.sleep(5)

    smtp.return_value.send_message.side_effect = stall
    config = replace(delivery_config, timeout=0.05)

    with pytest.raises(DispatchError) as excinfo:
        MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert 'timed out' in str(excinfo.value)
    assert excinfo.value.transient is True


def test_stalled_quit_after_send_is_not_a_failure(smtp, delivery_config, caplog):
    async def stall(*args, **kwargs):
        await asyncio.sleep(5)

    smtp.return_value.quit.side_effect = stall
    config = replace(delivery_config, timeout=0.05, retry_once=True)

    with caplog.at_level('DEBUG', logger='core.mail_dispatcher'):
        MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.send_message.await_count == 1
    smtp.return_value.close.assert_called_once()
    assert 'SMTP quit failed' in caplog.text


def test_quit_rejection_after_send_is_not_a_failure(smtp, delivery_config):
    smtp.return_value.quit.side_effect = aiosmtplib.SMTPResponseException(421, 'Closing')
    config = replace(delivery_config, retry_once=True)

    MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.send_message.await_count == 1


def test_retry_once_on_transient_failure(smtp, delivery_config):
    smtp.return_value.send_message.side_effect = [
        aiosmtplib.SMTPResponseException(421, 'Service not available'),
        None,
    ]
    config = replace(delivery_config, retry_once=True)

    MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.connect.await_count == 2
    assert smtp.return_value.send_message.await_count == 2


def test_no_retry_on_permanent_failure(smtp, delivery_config):
    smtp.return_value.send_message.side_effect = aiosmtplib.SMTPResponseException(554, 'Rejected')
    config = replace(delivery_config, retry_once=True)

    with pytest.raises(DispatchError):
        MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.send_message.await_count == 1


def test_no_retry_unless_enabled(smtp, delivery_config):
    smtp.return_value.send_message.side_effect = aiosmtplib.SMTPResponseException(451, 'Try later')

    with pytest.raises(DispatchError):
        MailDispatcher(delivery_config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.send_message.await_count == 1


def test_retry_gives_up_after_second_attempt(smtp, delivery_config):
    smtp.return_value.connect.side_effect = aiosmtplib.SMTPServerDisconnected('gone')
    config = replace(delivery_config, retry_once=True)

    with pytest.raises(DispatchError):
        MailDispatcher(config).deliver('subject', '<p>hi</p>')

    assert smtp.return_value.connect.await_count == 2


def test_verify_success(smtp, delivery_config):
    assert MailDispatcher(delivery_config).verify() is True
    smtp.return_value.login.assert_awaited_once()
    smtp.return_value.quit.assert_awaited_once()


def test_verify_failure_is_reported_not_raised(smtp, delivery_config, caplog):
    smtp.return_value.login.side_effect = aiosmtplib.SMTPAuthenticationError(535, 'Bad credentials')

    assert MailDispatcher(delivery_config).verify() is False
    assert 'Mail transporter not ready' in caplog.text
