"""Reply service exception hierarchy.

Base exceptions for all application layers with correlation ID support.

Usage:
    from src.exceptions import UpstreamStreamError

    try:
        streamer.handle_event(payload)
    except UpstreamStreamError as e:
        logger.error("Reply failed (%s): %s", e.correlation_id, e)
"""

import uuid


class AppError(Exception):
    """Base exception for all application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ReplyError(AppError):
    """Errors from AI reply generation."""

    def __init__(self, message: str, *, conversation_id: str | None = None, **kwargs):
        self.conversation_id = conversation_id
        super().__init__(message, **kwargs)


class UpstreamStreamError(ReplyError):
    """The upstream model stream failed.

    Raised for ``response.error`` events and for non-2xx responses when
    opening the stream. Fatal for the whole reply attempt.
    """

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ToolTimeoutError(AppError):
    """A single tool attempt exceeded its timeout."""

    def __init__(self, message: str, *, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(message, **kwargs)


class ConfigurationError(AppError):
    """Errors from application configuration."""

    pass
