"""Conflict case status machine and the evidence gates on each transition.

Statuses only move forward:

    DRAFT -> IN_PROGRESS -> PENDING_REVIEW -> AWAITING_ACTION -> CLOSED | ESCALATED

A rejected transition raises a typed error and leaves the case untouched.
CLOSED and ESCALATED are terminal; afterwards only export entries may be
appended to the audit log.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional, TypeVar
from uuid import UUID

from ..models.conflict_case import (
    Actor,
    CaseStatus,
    CaseType,
    ConflictCase,
    GeneratedActionDocument,
    InvolvedEmployee,
)
from . import audit_trail as audit
from .analysis_payloads import build_model, ensure_aware
from .audit_trail import AuditTrail
from .errors import (
    ActionNotSelectedError,
    CaseLockedError,
    CaseOperationError,
    CaseValidationError,
    DocumentNotApprovedError,
    DocumentNotFoundError,
    GeneratedDocumentApprovedError,
    InvalidTransitionError,
    MissingEvidenceError,
    NoComplainantError,
    NoRecommendationError,
    TimestampOrderError,
)
from .identity import IdentitySource

logger = logging.getLogger(__name__)

ErrorT = TypeVar("ErrorT", bound=CaseOperationError)

STATUS_ORDER: tuple[str, ...] = (
    "DRAFT",
    "IN_PROGRESS",
    "PENDING_REVIEW",
    "AWAITING_ACTION",
    "CLOSED",
    "ESCALATED",
)

_ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "DRAFT": ("IN_PROGRESS",),
    "IN_PROGRESS": ("PENDING_REVIEW",),
    "PENDING_REVIEW": ("AWAITING_ACTION",),
    "AWAITING_ACTION": ("CLOSED", "ESCALATED"),
    "CLOSED": (),
    "ESCALATED": (),
}

_TRANSITION_AUDIT_ACTIONS: dict[str, str] = {
    "IN_PROGRESS": audit.CASE_OPENED,
    "PENDING_REVIEW": audit.CASE_SUBMITTED_FOR_REVIEW,
    "AWAITING_ACTION": audit.CASE_AWAITING_ACTION,
    "CLOSED": audit.CASE_CLOSED,
    "ESCALATED": audit.CASE_ESCALATED,
}

# Statuses in which document content may still change
EDITABLE_STATUSES: frozenset[str] = frozenset({"DRAFT", "IN_PROGRESS"})
# Statuses in which the supervisor may pick an action
DECISION_STATUSES: frozenset[str] = frozenset({"PENDING_REVIEW", "AWAITING_ACTION"})
ACTIVE_STATUSES: frozenset[str] = frozenset(STATUS_ORDER[:4])


# ===========================================
# Transition table
# ===========================================

def _coerce_status(value: str) -> str:
    if value not in _ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown case status '{value}'")
    return value


def all_statuses() -> list[str]:
    return list(STATUS_ORDER)


def state_machine_map() -> dict[str, list[str]]:
    return {source: list(targets) for source, targets in _ALLOWED_TRANSITIONS.items()}


def status_rank(status: str) -> int:
    """Position in the lifecycle; both terminal statuses share the last rank."""
    status = _coerce_status(status)
    return min(STATUS_ORDER.index(status), STATUS_ORDER.index("CLOSED"))


def can_transition(status_from: str, status_to: str) -> bool:
    source = _coerce_status(status_from)
    target = _coerce_status(status_to)
    return target in _ALLOWED_TRANSITIONS[source]


def validate_transition(status_from: str, status_to: str, *, case_id=None) -> None:
    source = _coerce_status(status_from)
    target = _coerce_status(status_to)

    allowed_targets = _ALLOWED_TRANSITIONS[source]
    if target not in allowed_targets:
        allowed_str = ", ".join(allowed_targets) or "none"
        raise InvalidTransitionError(
            f"Invalid case transition '{source}' -> '{target}'. Allowed targets: {allowed_str}.",
            case_id=case_id,
        )


# ===========================================
# Derived predicates
# ===========================================

def has_all_required_documents(case: ConflictCase) -> bool:
    """Both complaint statements are attached and have cleaned text."""
    return all(
        doc is not None and bool(doc.cleaned_text.strip())
        for doc in (case.complaint_document_a, case.complaint_document_b)
    )


def can_run_comparison(case: ConflictCase) -> bool:
    return has_all_required_documents(case) and case.comparison_result is None


def missing_evidence(case: ConflictCase) -> list[str]:
    """Human-readable list of what blocks submission for review."""
    missing: list[str] = []
    for label, doc in (
        ("COMPLAINT_A", case.complaint_document_a),
        ("COMPLAINT_B", case.complaint_document_b),
    ):
        if doc is None:
            missing.append(f"{label} document")
        elif not doc.cleaned_text.strip():
            missing.append(f"{label} cleaned text")
    if case.comparison_result is None:
        missing.append("accepted comparison result")
    return missing


# ===========================================
# Guards shared by the case operations
# ===========================================

def rejection(case: ConflictCase, error: ErrorT) -> ErrorT:
    """Log a rejected operation and hand the error back for raising."""
    if error.case_id is None:
        error.case_id = str(case.id)
    logger.warning("Rejected on case %s [%s]: %s", case.case_number, error.code, error)
    return error


def ensure_status(case: ConflictCase, allowed: Iterable[str], operation: str) -> None:
    allowed = frozenset(allowed)
    if case.status not in allowed:
        allowed_str = ", ".join(status for status in STATUS_ORDER if status in allowed)
        raise rejection(
            case,
            CaseLockedError(
                f"Cannot {operation} while case is {case.status}; allowed in: {allowed_str}"
            ),
        )


def ensure_mutable(case: ConflictCase, operation: str) -> None:
    ensure_status(case, ACTIVE_STATUSES, operation)


# ===========================================
# State machine
# ===========================================

class CaseStateMachine:
    def __init__(self, identity: IdentitySource, audit_trail: Optional[AuditTrail] = None):
        self.identity = identity
        self.audit = audit_trail or AuditTrail(identity)

    # Creation

    def new_employee(
        self,
        name: str,
        *,
        role: str = "",
        department: str = "",
        employee_id: Optional[str] = None,
        is_complainant: bool = False,
    ) -> InvolvedEmployee:
        return build_model(
            InvolvedEmployee,
            label="involved employee",
            id=self.identity.new_id(),
            name=name,
            role=role,
            department=department,
            employee_id=employee_id,
            is_complainant=is_complainant,
        )

    def create_case(
        self,
        actor: Actor,
        *,
        incident_date: datetime,
        type: CaseType = "CONFLICT",
        location: str = "",
        department: str = "",
        shift: Optional[str] = None,
        involved_employees: Iterable[InvolvedEmployee] = (),
        active_policy_id: Optional[UUID] = None,
        case_number: Optional[str] = None,
    ) -> ConflictCase:
        """Create a DRAFT case owned by ``actor``."""
        created_at = self.identity.now()
        employees = list(involved_employees)
        if len({emp.id for emp in employees}) != len(employees):
            raise CaseValidationError("Involved employees must have unique ids")

        case = build_model(
            ConflictCase,
            label="case",
            id=self.identity.new_id(),
            case_number=case_number or self.identity.case_number(created_at.date()),
            type=type,
            status="DRAFT",
            incident_date=incident_date,
            location=location,
            department=department,
            shift=shift,
            involved_employees=employees,
            created_by=actor.id,
            created_at=created_at,
            updated_at=created_at,
            active_policy_id=active_policy_id,
        )
        self.audit.append(
            case,
            audit.CASE_CREATED,
            f"{case.type} case created with {len(employees)} involved employee(s)",
            actor,
        )
        logger.info("Created case %s (%s)", case.case_number, case.type)
        return case

    def add_employee(self, case: ConflictCase, actor: Actor, employee: InvolvedEmployee) -> None:
        ensure_status(case, EDITABLE_STATUSES, "add an involved employee")
        if any(existing.id == employee.id for existing in case.involved_employees):
            raise CaseValidationError(f"Employee {employee.id} is already on the case")

        case.involved_employees.append(employee)
        role = "complainant" if employee.is_complainant else "witness"
        self.audit.append(case, audit.EMPLOYEE_ADDED, f"Added {employee.name} as {role}", actor)

    def update_supervisor_notes(self, case: ConflictCase, actor: Actor, notes: str) -> None:
        ensure_mutable(case, "update supervisor notes")
        case.supervisor_notes = notes
        self.audit.append(case, audit.SUPERVISOR_NOTES_UPDATED, "Supervisor notes updated", actor)

    def record_export(self, case: ConflictCase, actor: Actor, details: str) -> None:
        """Append an export entry; permitted in every status, terminal included."""
        self.audit.append(case, audit.CASE_EXPORTED, details, actor)

    # Transitions

    def _check_preconditions(self, case: ConflictCase, target: str) -> None:
        if target == "IN_PROGRESS":
            if case.party_a is None:
                raise rejection(
                    case, NoComplainantError("At least one complainant is required to open the case")
                )
        elif target == "PENDING_REVIEW":
            missing = missing_evidence(case)
            if missing:
                raise rejection(
                    case, MissingEvidenceError(f"Missing required evidence: {', '.join(missing)}")
                )
        elif target == "AWAITING_ACTION":
            if not case.recommendations:
                raise rejection(
                    case, NoRecommendationError("At least one recommendation is required")
                )
        elif target == "CLOSED":
            if case.selected_action is None:
                raise rejection(case, ActionNotSelectedError("Select an action before closing"))
            document = case.generated_document
            if document is not None and not document.is_approved:
                raise rejection(
                    case, DocumentNotApprovedError("The generated action document is not approved")
                )
        elif target == "ESCALATED":
            if case.selected_action is None:
                raise rejection(case, ActionNotSelectedError("Select an action before escalating"))
            if case.selected_action != "ESCALATE_TO_HR":
                raise rejection(
                    case,
                    InvalidTransitionError(
                        f"Escalation requires ESCALATE_TO_HR, selected {case.selected_action}"
                    ),
                )

    def transition(self, case: ConflictCase, target: CaseStatus, actor: Actor) -> None:
        try:
            validate_transition(case.status, target, case_id=case.id)
        except InvalidTransitionError as exc:
            raise rejection(case, exc)
        self._check_preconditions(case, target)

        source = case.status
        case.status = target
        entry = self.audit.append(
            case,
            _TRANSITION_AUDIT_ACTIONS[target],
            f"Status changed from {source} to {target}",
            actor,
        )
        if target in ("CLOSED", "ESCALATED"):
            case.closed_at = entry.timestamp
        logger.info("Case %s moved %s -> %s", case.case_number, source, target)

    def open_case(self, case: ConflictCase, actor: Actor) -> None:
        self.transition(case, "IN_PROGRESS", actor)

    def submit_for_review(self, case: ConflictCase, actor: Actor) -> None:
        self.transition(case, "PENDING_REVIEW", actor)

    def mark_awaiting_action(self, case: ConflictCase, actor: Actor) -> None:
        self.transition(case, "AWAITING_ACTION", actor)

    def close_case(self, case: ConflictCase, actor: Actor) -> None:
        self.transition(case, "CLOSED", actor)

    def escalate_case(self, case: ConflictCase, actor: Actor) -> None:
        self.transition(case, "ESCALATED", actor)

    # Generated action document

    def attach_generated_document(
        self,
        case: ConflictCase,
        actor: Actor,
        *,
        title: str,
        content: str,
        talking_points: Optional[list[str]] = None,
        questions_to_ask: Optional[list[str]] = None,
        behavioral_focus_areas: Optional[list[str]] = None,
        follow_up_timeline: Optional[str] = None,
        policy_references: Optional[list[str]] = None,
    ) -> GeneratedActionDocument:
        """Attach the drafted document for the selected action.

        An unapproved draft is replaced; an approved one is final.
        """
        ensure_status(case, DECISION_STATUSES, "attach a generated document")
        if case.selected_action is None:
            raise rejection(
                case, ActionNotSelectedError("Select an action before generating its document")
            )
        previous = case.generated_document
        if previous is not None and previous.is_approved:
            raise rejection(
                case, GeneratedDocumentApprovedError("The approved action document cannot be replaced")
            )

        document = build_model(
            GeneratedActionDocument,
            label="generated document",
            id=self.identity.new_id(),
            action_type=case.selected_action,
            title=title,
            content=content,
            talking_points=talking_points,
            questions_to_ask=questions_to_ask,
            behavioral_focus_areas=behavioral_focus_areas,
            follow_up_timeline=follow_up_timeline,
            policy_references=policy_references,
            created_at=self.identity.now(),
        )
        case.generated_document = document
        details = f"Generated {document.action_type} document '{title}'"
        if previous is not None:
            details += f" replacing draft {previous.id}"
        self.audit.append(case, audit.ACTION_DOCUMENT_GENERATED, details, actor)
        return document

    def _editable_generated_document(self, case: ConflictCase, operation: str) -> GeneratedActionDocument:
        ensure_status(case, DECISION_STATUSES, operation)
        document = case.generated_document
        if document is None:
            raise rejection(case, DocumentNotFoundError("No generated action document on the case"))
        if document.is_approved:
            raise rejection(
                case, GeneratedDocumentApprovedError("The action document is already approved")
            )
        return document

    def edit_generated_document(self, case: ConflictCase, actor: Actor, supervisor_edits: str) -> None:
        document = self._editable_generated_document(case, "edit the generated document")
        document.supervisor_edits = supervisor_edits
        self.audit.append(
            case, audit.ACTION_DOCUMENT_EDITED, f"Supervisor edited document {document.id}", actor
        )

    def approve_generated_document(
        self,
        case: ConflictCase,
        actor: Actor,
        approved_at: Optional[datetime] = None,
    ) -> None:
        if approved_at is not None:
            ensure_aware(approved_at, "Approval timestamp")
        document = self._editable_generated_document(case, "approve the generated document")
        approved_at = approved_at or self.identity.now()
        if approved_at < document.created_at:
            raise rejection(
                case, TimestampOrderError("Approval cannot precede the document's creation")
            )
        document.is_approved = True
        document.approved_at = approved_at
        self.audit.append(
            case, audit.ACTION_DOCUMENT_APPROVED, f"Approved document {document.id}", actor
        )
