"""
kpi/errors.py

Typed failures raised by the status engine and the fact change workflow.

HTTP layers map each subclass onto a distinct status code; see
``app/api/errors.py``.
"""

from __future__ import annotations


class KPIWorkflowError(Exception):
    """Base class for every expected workflow failure."""


class NotFoundError(KPIWorkflowError):
    """Raised when a fact, plan, change request or batch does not exist (or is inactive)."""


class ConflictError(KPIWorkflowError):
    """Raised when a pending change request already exists for a fact."""


class InvalidStateError(KPIWorkflowError):
    """Raised when approving or rejecting something that is no longer pending."""


class InvalidConfigurationError(KPIWorkflowError):
    """Raised when a year plan carries no usable target direction."""


class ValidationError(KPIWorkflowError):
    """Raised for malformed input: missing reject reason, unknown status code, bad batch period range."""


class PermissionDeniedError(KPIWorkflowError):
    """Raised when the acting identity may not review changes on a plan."""
