"""
Error taxonomy shared by every service in the advisory core.

Each error knows the HTTP status and envelope code the gateway should answer with,
so services can raise freely and main.py maps them in a single exception handler.
"""

from typing import Any, Dict, Optional


class AdvisorError(Exception):
    """Base class for all errors raised by the advisory core"""
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthenticationError(AdvisorError):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationError(AdvisorError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(AdvisorError):
    """Missing record, or a record owned by someone else"""
    code = "NOT_FOUND"
    status_code = 404


class PersistenceError(AdvisorError):
    code = "PERSISTENCE_ERROR"
    status_code = 500


class _UpstreamError(AdvisorError):
    status_code = 502

    def __init__(self, stage: str, detail: str, status: Optional[int] = None):
        super().__init__(f"{stage}: {detail}", details={"stage": stage, "upstream_status": status})
        self.stage = stage
        self.detail = detail
        self.status = status


class UpstreamInferenceError(_UpstreamError):
    """
    Inference service failure. `stage` is one of:
    missing_credential, transport, http_status, app_error, empty_result, decode
    """
    code = "UPSTREAM_INFERENCE_ERROR"


class UpstreamSearchError(_UpstreamError):
    """
    Web search failure. `stage` is one of:
    missing_credential, transport, http_status, decode
    """
    code = "UPSTREAM_SEARCH_ERROR"
