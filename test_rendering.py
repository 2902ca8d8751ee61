from dataclasses import fields
from datetime import datetime, timezone

from core.template_engine import (TIMESTAMP_FORMAT, NotificationTemplateEngine, RenderedMessage,
                                  render_notification)
from core.validation import Submission

RECEIVED_AT = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def make_submission(**overrides):
    payload = {'name': 'Ann', 'organization': 'Acme', 'contactNo': '123-456-7890'}
    payload.update(overrides)
    return Submission.from_payload(payload)


def test_subject_line():
    rendered = render_notification(make_submission(source='Pricing Page'), RECEIVED_AT)
    assert rendered.subject == 'Callback Request (Pricing Page) — Ann'


def test_subject_defaults_source():
    rendered = render_notification(make_submission(), RECEIVED_AT)
    assert rendered.subject == 'Callback Request (Unknown Page) — Ann'


def test_subject_is_single_line():
    rendered = render_notification(make_submission(name='Ann\r\nBcc: victim@example.com'), RECEIVED_AT)
    assert '\n' not in rendered.subject
    assert '\r' not in rendered.subject


def test_body_lists_all_fields():
    rendered = render_notification(make_submission(
        email='ann@acme.test', message='Call after 5', source='Home'), RECEIVED_AT)

    for label, value in [('Name', 'Ann'), ('Organization', 'Acme'),
                         ('Contact No.', '123-456-7890'), ('Email', 'ann@acme.test'),
                         ('Message', 'Call after 5')]:
        assert f'<td><strong>{label}:</strong></td><td>{value}</td>' in rendered.html
        assert f'{label}: {value}' in rendered.text

    assert '<p><strong>Source:</strong> Home</p>' in rendered.html
    assert 'Received at 14 Mar 2026, 09:30:00 UTC' in rendered.html
    assert rendered.received_at == RECEIVED_AT


def test_script_tag_is_escaped():
    rendered = render_notification(make_submission(name='<script>alert(1)</script>'), RECEIVED_AT)

    assert '<script>' not in rendered.html
    assert '&lt;script&gt;alert(1)&lt;/script&gt;' in rendered.html


def test_all_markup_characters_escaped():
    rendered = render_notification(make_submission(
        organization='Tom & "Jerry\'s"', source='<b>x</b>'), RECEIVED_AT)

    assert 'Tom &amp; &#34;Jerry&#39;s&#34;' in rendered.html
    assert '<b>' not in rendered.html
    assert 'New Callback Request (&lt;b&gt;x&lt;/b&gt;)' in rendered.html


def test_missing_optional_fields_use_placeholder():
    rendered = render_notification(make_submission(), RECEIVED_AT)

    assert '<td><strong>Email:</strong></td><td>Not provided</td>' in rendered.html
    assert '<td><strong>Message:</strong></td><td>Not provided</td>' in rendered.html
    assert 'Unknown Page' in rendered.html
    assert 'undefined' not in rendered.html
    assert '<td></td>' not in rendered.html


def test_text_part_is_not_escaped():
    rendered = render_notification(make_submission(organization='Tom & Jerry'), RECEIVED_AT)
    assert 'Organization: Tom & Jerry' in rendered.text


def test_default_timestamp_is_generated():
    rendered = NotificationTemplateEngine().render(make_submission())
    assert rendered.received_at.tzinfo is not None
    assert rendered.received_at.strftime(TIMESTAMP_FORMAT).strip() in rendered.text


def test_rendered_message_carries_only_delivery_fields():
    assert [field.name for field in fields(RenderedMessage)] == ['subject', 'html', 'text', 'received_at']
