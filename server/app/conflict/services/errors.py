"""Typed errors raised by conflict case operations.

Every error is locally recoverable: the operation that raised it has not
changed the case.
"""

from __future__ import annotations

from typing import Any, Optional


class CaseOperationError(Exception):
    """Base class for rejected case operations."""

    code = "case_operation_error"

    def __init__(self, message: str, *, case_id: Optional[Any] = None):
        super().__init__(message)
        self.case_id = str(case_id) if case_id is not None else None


# Evidence and transition gates

class InvalidTransitionError(CaseOperationError):
    """Raised for backward, skipped, or post-terminal status transitions."""
    code = "invalid_transition"


class NoComplainantError(CaseOperationError):
    code = "no_complainant"


class MissingEvidenceError(CaseOperationError):
    code = "missing_evidence"


class NoRecommendationError(CaseOperationError):
    code = "no_recommendation"


class CaseLockedError(CaseOperationError):
    """Raised when the case status no longer permits the mutation."""
    code = "case_locked"


# Document ledger

class DocumentNotFoundError(CaseOperationError):
    code = "document_not_found"


class DuplicateDocumentTypeError(CaseOperationError):
    code = "duplicate_document_type"


class TimestampOrderError(CaseOperationError):
    code = "timestamp_order"


class AlreadyReviewedError(CaseOperationError):
    code = "already_reviewed"


class ReviewRequiredFirstError(CaseOperationError):
    code = "review_required_first"


class AlreadySignedError(CaseOperationError):
    code = "already_signed"


class SignatureRequiredFirstError(CaseOperationError):
    code = "signature_required_first"


class AlreadyCertifiedError(CaseOperationError):
    code = "already_certified"


# Analysis and decision

class ComparisonAlreadyPresentError(CaseOperationError):
    code = "comparison_already_present"


class ActionNotRecommendedError(CaseOperationError):
    code = "action_not_recommended"


class ActionAlreadySelectedError(CaseOperationError):
    code = "action_already_selected"


class ActionNotSelectedError(CaseOperationError):
    code = "action_not_selected"


class DocumentNotApprovedError(CaseOperationError):
    code = "document_not_approved"


class GeneratedDocumentApprovedError(CaseOperationError):
    code = "generated_document_approved"


# Persistence

class CaseNotFoundError(CaseOperationError):
    code = "case_not_found"


class StaleWriteError(CaseOperationError):
    """Raised when the stored case changed after it was loaded."""
    code = "stale_write"


class CaseNumberExhaustedError(CaseOperationError):
    code = "case_number_exhausted"


# Boundary validation

class CaseValidationError(ValueError):
    """Raised when external input does not match the expected shape."""

    code = "validation_error"

    def __init__(self, message: str, problems: Optional[list[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class PolicyStructureError(CaseValidationError):
    code = "policy_structure"
