"""
Error taxonomy for the pipeline.

Every handled error carries a client-facing summary (`message`), optional
`details` describing the underlying cause, and the HTTP status the API
should answer with.
"""

from typing import Any, List, Optional


class DailySpinError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {'error': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class ConfigurationError(DailySpinError):
    """A required API key or setting is missing."""
    status_code = 500


class InvalidRequestError(DailySpinError):
    status_code = 400


class UpstreamError(DailySpinError):
    """
    An upstream service answered with a non-2xx status.

    `status` is the upstream HTTP status, 0 when no response was received.
    """
    status_code = 502

    def __init__(self, message: str, status: int = 0, details: Any = None):
        super().__init__(message, details=details)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status == 0 or self.status >= 500


class NetworkError(UpstreamError):
    """Connection failure or timeout before any HTTP status was received."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, status=0, details=details)


class ExtractionError(DailySpinError):
    status_code = 502


class PlanValidationError(DailySpinError):
    status_code = 502


class ModelChainExhausted(DailySpinError):
    status_code = 502

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, details='; '.join(errors or []) or None)
        self.errors = list(errors or [])


class AuthenticationError(DailySpinError):
    """Suno rejected the API key (401/403)."""
    status_code = 502

    def __init__(self, message: str, job_id: str = '', status: int = 401, details: Any = None):
        super().__init__(message, details=details)
        self.job_id = job_id
        self.status = status


class RelayError(DailySpinError):
    pass


class PollTimeout(DailySpinError):
    status_code = 504
