# api/callback.py
"""
Callback Request API
"""

import logging

from flask import Blueprint, Flask, current_app, jsonify, request

from core.exceptions import ConfigurationNotReady, DispatchError, ValidationError
from core.mail_dispatcher import MailDispatcher
from core.template_engine import render_notification
from core.validation import Submission, validate_payload

callback_bp = Blueprint('callback', __name__)
logger = logging.getLogger(__name__)

DISPATCHER_EXTENSION = 'callback_dispatcher'
INTERNAL_ERROR_MESSAGE = 'Internal server error'


def init_callback_api(app: Flask, dispatcher: MailDispatcher = None) -> None:
    """Attach the dispatcher used by the callback endpoint and register the blueprint"""
    app.extensions[DISPATCHER_EXTENSION] = dispatcher
    app.register_blueprint(callback_bp, url_prefix='/api')


def get_dispatcher() -> MailDispatcher:
    dispatcher = current_app.extensions.get(DISPATCHER_EXTENSION)
    if dispatcher is None:
        raise ConfigurationNotReady('Mail dispatcher is not initialized')
    return dispatcher


@callback_bp.route('/callback', methods=['POST'])
def create_callback():
    """
    Relay a callback request form as an email notification

    Validation errors are returned verbatim; every other failure is logged
    and answered with a generic message.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}

    try:
        error = validate_payload(payload)
        if error:
            raise ValidationError(error)

        submission = Submission.from_payload(payload)
        rendered = render_notification(submission)

        get_dispatcher().deliver(rendered.subject, rendered.html, rendered.text)

        return jsonify({'success': True})

    except ValidationError as e:
        logger.info(f"Callback rejected from {request.remote_addr}: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 400

    except ConfigurationNotReady as e:
        logger.error(f"Callback mail error: {str(e)}")
        return jsonify({'success': False, 'error': INTERNAL_ERROR_MESSAGE}), 500

    except DispatchError as e:
        logger.error(f"Callback mail error: {str(e)}", exc_info=True)
        return jsonify({'success': False, 'error': INTERNAL_ERROR_MESSAGE}), 500
