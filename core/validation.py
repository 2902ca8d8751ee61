# core/validation.py
"""
Callback payload validation and normalization
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

NOT_PROVIDED = 'Not provided'
UNKNOWN_SOURCE = 'Unknown Page'

CONTACT_NO_PATTERN = re.compile(r'[0-9+\-\s()]{7,20}')

# (field, message) in the order the rules are checked
REQUIRED_FIELDS = (
    ('name', 'Name is required'),
    ('organization', 'Organization name is required'),
    ('contactNo', 'Contact number is required'),
)


def _clean(value: Any) -> str:
    """Trimmed string value, or '' for anything that is not a string"""
    if not isinstance(value, str):
        return ''
    return value.strip()


def validate_payload(payload: Any) -> Optional[str]:
    """
    Check a submitted callback payload against the required-field rules

    Rules are checked in a fixed order and the first failure wins.

    Returns:
        None when the payload is valid, otherwise the error message
    """
    if not isinstance(payload, dict):
        payload = {}

    for field, message in REQUIRED_FIELDS:
        if not _clean(payload.get(field)):
            return message

    if not CONTACT_NO_PATTERN.fullmatch(_clean(payload.get('contactNo'))):
        return 'Invalid contact number'

    return None


@dataclass(frozen=True)
class Submission:
    """One validated callback request"""
    name: str
    organization: str
    contact_no: str
    email: str = NOT_PROVIDED
    message: str = NOT_PROVIDED
    source: str = UNKNOWN_SOURCE

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'Submission':
        """Build a Submission from a payload that already passed validate_payload"""
        return cls(
            name=_clean(payload.get('name')),
            organization=_clean(payload.get('organization')),
            contact_no=_clean(payload.get('contactNo')),
            email=_clean(payload.get('email')) or NOT_PROVIDED,
            message=_clean(payload.get('message')) or NOT_PROVIDED,
            source=_clean(payload.get('source')) or UNKNOWN_SOURCE,
        )
