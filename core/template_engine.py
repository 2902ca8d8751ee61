# core/template_engine.py
"""
Notification Template Engine for Callback Requests
Renders a validated submission into an HTML email body with a plain text
alternative. All submitted values pass through Jinja2 autoescaping.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from jinja2 import Environment, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError

from core.validation import Submission

# Configure logging
logger = logging.getLogger(__name__)

SUBJECT_FORMAT = 'Callback Request ({source}) — {name}'
TIMESTAMP_FORMAT = '%d %b %Y, %H:%M:%S %Z'

HTML_TEMPLATE = """
<h2>New Callback Request ({{ submission.source }})</h2>
<table cellpadding="6">
  {% for label, value in rows %}
  <tr><td><strong>{{ label }}:</strong></td><td>{{ value }}</td></tr>
  {% endfor %}
</table>
<p><strong>Source:</strong> {{ submission.source }}</p>
<p>Received at {{ received_at }}</p>
"""

TEXT_TEMPLATE = """
New Callback Request ({{ submission.source }})

{% for label, value in rows %}
{{ label }}: {{ value }}
{% endfor %}

Source: {{ submission.source }}
Received at {{ received_at }}
"""


@dataclass
class RenderedMessage:
    """Result of rendering one callback notification"""
    subject: str
    html: str
    text: str
    received_at: datetime


def _single_line(value: str) -> str:
    """Collapse line breaks and runs of whitespace so a value fits one header line"""
    return ' '.join(value.split())


class NotificationTemplateEngine:
    """
    Renders callback notifications

    The HTML environment always autoescapes, so ``&``, ``<``, ``>``, ``"``
    and ``'`` in submitted values come out as entities.
    """

    def __init__(self,
                 html_template: str = HTML_TEMPLATE,
                 text_template: str = TEXT_TEMPLATE):
        self.html_env = Environment(
            autoescape=select_autoescape(default_for_string=True, default=True),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Plain text part is never interpreted as markup
        self.text_env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.html_template = self.html_env.from_string(html_template)
        self.text_template = self.text_env.from_string(text_template)

    def render(self, submission: Submission,
               received_at: Optional[datetime] = None) -> RenderedMessage:
        """
        Render subject, HTML body and text body for a submission

        Args:
            submission: Validated callback submission
            received_at: Receipt timestamp, defaults to the current local time

        Returns:
            RenderedMessage with the subject line and both bodies
        """
        received_at = received_at or datetime.now(timezone.utc).astimezone()

        rows = [
            ('Name', submission.name),
            ('Organization', submission.organization),
            ('Contact No.', submission.contact_no),
            ('Email', submission.email),
            ('Message', submission.message),
        ]
        context = {
            'submission': submission,
            'rows': rows,
            'received_at': received_at.strftime(TIMESTAMP_FORMAT).strip(),
        }

        try:
            html = self.html_template.render(**context).strip()
            text = self.text_template.render(**context).strip()
        except TemplateError as e:
            logger.error(f"Notification rendering failed: {str(e)}")
            raise

        subject = SUBJECT_FORMAT.format(
            source=_single_line(submission.source),
            name=_single_line(submission.name),
        )

        logger.debug(f"Notification rendered for {submission.source}")

        return RenderedMessage(
            subject=subject,
            html=html,
            text=text,
            received_at=received_at,
        )


_default_engine = NotificationTemplateEngine()


def render_notification(submission: Submission,
                        received_at: Optional[datetime] = None) -> RenderedMessage:
    """Render a submission with the default templates"""
    return _default_engine.render(submission, received_at)
