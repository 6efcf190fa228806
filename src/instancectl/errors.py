"""
Error types raised by the instance controller.

The controller only raises; the CLI (or any other host) decides how to
render them.
"""

from __future__ import annotations

from datetime import timedelta


class InstanceCtlError(Exception):
    """Base error. Carries a short summary and a longer detail line."""

    def __init__(self, summary: str, detail: str = "") -> None:
        super().__init__(f"{summary}: {detail}" if detail else summary)
        self.summary = summary
        self.detail = detail


class ValidationError(InstanceCtlError):
    """Declared configuration is malformed. Raised before any remote call."""


class ApiError(InstanceCtlError):
    """The control plane answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str | None = None,
        request_id: str | None = None,
    ) -> None:
        detail = message
        if error_code:
            detail = f"{error_code}: {message}"
        super().__init__(f"HTTP {status_code}", detail)
        self.status_code = status_code
        self.message = message
        self.error_code = error_code
        self.request_id = request_id


class RemoteCallError(InstanceCtlError):
    """A lifecycle step failed against the control plane."""

    def __init__(self, step: str, cause: BaseException, not_found: bool = False):
        super().__init__(step, f"API error: {cause}")
        self.step = step
        self.not_found = not_found


class OperationTimeoutError(InstanceCtlError):
    """The operation budget ran out before the controller finished."""

    def __init__(self, operation: str, budget: timedelta, step: str = "") -> None:
        detail = f"{operation} did not complete within {budget}"
        if step:
            detail += f" (while: {step})"
        super().__init__("Timed out", detail)
        self.operation = operation
        self.budget = budget
        self.step = step


class UnsupportedOperationError(InstanceCtlError):
    """The control plane has no API for the requested operation."""
