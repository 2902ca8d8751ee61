# core/exceptions.py
"""
Exception hierarchy for the callback relay
"""

from typing import Optional


class CallbackRelayError(Exception):
    """Base exception for callback relay operations"""
    pass


class ValidationError(CallbackRelayError):
    """Submitted payload failed a validation rule; message is client-facing"""
    pass


class ConfigurationError(CallbackRelayError):
    """Delivery configuration could not be loaded or is invalid"""
    pass


class ConfigurationNotReady(CallbackRelayError):
    """Mail dispatcher was never initialized"""
    pass


class DispatchError(CallbackRelayError):
    """Mail relay rejected the message, was unreachable, or timed out"""

    def __init__(self, message: str, code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.code = code
        self.transient = transient
