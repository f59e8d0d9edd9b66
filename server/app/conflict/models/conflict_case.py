"""Pydantic models for the Conflict Resolution case aggregate.

The JSON shape uses camelCase keys so the mobile client and the persisted
case documents share one contract; Python code uses the snake_case names.
"""

import re
from typing import Literal, Optional
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel


# Type aliases
CaseType = Literal["CONFLICT", "CONDUCT", "SAFETY", "OTHER"]
CaseStatus = Literal[
    "DRAFT",
    "IN_PROGRESS",
    "PENDING_REVIEW",
    "AWAITING_ACTION",
    "CLOSED",
    "ESCALATED",
]
CaseDocumentType = Literal[
    "COMPLAINT_A",
    "COMPLAINT_B",
    "WITNESS_STATEMENT",
    "PRIOR_RECORD",
    "COUNSELING_RECORD",
    "WARNING_DOCUMENT",
    "EVIDENCE",
    "OTHER",
]
RecommendedAction = Literal["COACHING", "COUNSELING", "WRITTEN_WARNING", "ESCALATE_TO_HR"]
ComparisonStatus = Literal["agreement", "contradiction", "partial", "unclear"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"CLOSED", "ESCALATED"})
CASE_NUMBER_PATTERN = re.compile(r"^[A-Z]{2,8}-\d{8}-\d{4}$")


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Actor(CamelModel):
    """The supervisor or employee a mutation is attributed to."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


# ===========================================
# Parties
# ===========================================

class InvolvedEmployee(CamelModel):
    """An employee named on the case. The first two complainants are Party A/B."""
    id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    role: str = ""
    department: str = ""
    employee_id: Optional[str] = None
    is_complainant: bool = False


# ===========================================
# Documents
# ===========================================

class CaseDocument(CamelModel):
    """A scanned statement or record with its review/signature audit block."""
    id: UUID
    type: CaseDocumentType
    original_image_urls: list[str] = Field(default_factory=list)
    processed_image_urls: list[str] = Field(default_factory=list)
    raw_text: str = ""
    translated_text: Optional[str] = None
    cleaned_text: str = ""
    detected_language: Optional[str] = None
    is_handwritten: Optional[bool] = None
    employee_id: Optional[UUID] = None
    submitted_by: Optional[str] = None
    page_count: int = Field(1, ge=1)
    created_at: AwareDatetime

    # Audit block
    signature_image: Optional[str] = None
    employee_review_timestamp: Optional[AwareDatetime] = None
    employee_signature_timestamp: Optional[AwareDatetime] = None
    supervisor_certification_timestamp: Optional[AwareDatetime] = None
    supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    submitted_by_id: Optional[str] = None
    device_id: Optional[str] = None
    app_version: Optional[str] = None
    version_hash: Optional[str] = None
    version_hash_history: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_audit_sequence(self):
        review = self.employee_review_timestamp
        signature = self.employee_signature_timestamp
        certification = self.supervisor_certification_timestamp
        if review is not None and review < self.created_at:
            raise ValueError("employeeReviewTimestamp precedes createdAt")
        if signature is not None and (review is None or signature < review):
            raise ValueError("employeeSignatureTimestamp requires an earlier employeeReviewTimestamp")
        if certification is not None and (signature is None or certification < signature):
            raise ValueError(
                "supervisorCertificationTimestamp requires an earlier employeeSignatureTimestamp"
            )
        return self

    @property
    def image_refs(self) -> list[str]:
        return [*self.original_image_urls, *self.processed_image_urls]

    @property
    def is_certified(self) -> bool:
        return self.supervisor_certification_timestamp is not None


# ===========================================
# AI Analysis Models (consumed as data)
# ===========================================

class SideBySideComparisonItem(CamelModel):
    """One topic compared across the two complaint statements."""
    model_config = ConfigDict(frozen=True)

    topic: str
    party_a_version: str
    party_b_version: str
    status: ComparisonStatus


class AIComparisonResult(CamelModel):
    """Comparison of the Party A and Party B statements. Immutable once accepted."""
    model_config = ConfigDict(frozen=True)

    timeline_differences: tuple[str, ...] = ()
    agreement_points: tuple[str, ...] = ()
    contradictions: tuple[str, ...] = ()
    emotional_language: tuple[str, ...] = ()
    missing_details: tuple[str, ...] = ()
    neutral_summary: str = ""
    side_by_side_comparison: tuple[SideBySideComparisonItem, ...] = ()
    party_a_name: str = ""
    party_b_name: str = ""
    generated_at: AwareDatetime


class PolicyMatch(CamelModel):
    """A policy section the AI collaborator judged relevant to the case."""
    id: UUID
    policy_section_id: UUID
    section_title: str
    section_number: str
    relevance_explanation: str
    match_confidence: float = Field(..., ge=0.0, le=1.0)


class AIRecommendation(CamelModel):
    """A candidate disciplinary action with its reasoning."""
    id: UUID
    action: RecommendedAction
    reasoning: str
    risk_assessment: str
    suggested_next_steps: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class GeneratedActionDocument(CamelModel):
    """Document drafted for the selected action; frozen once approved."""
    id: UUID
    action_type: RecommendedAction
    title: str
    content: str
    talking_points: Optional[list[str]] = None
    questions_to_ask: Optional[list[str]] = None
    behavioral_focus_areas: Optional[list[str]] = None
    follow_up_timeline: Optional[str] = None
    policy_references: Optional[list[str]] = None
    supervisor_edits: Optional[str] = None
    is_approved: bool = False
    created_at: AwareDatetime
    approved_at: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def validate_approval(self):
        if self.is_approved and self.approved_at is None:
            raise ValueError("Approved documents require approvedAt")
        if not self.is_approved and self.approved_at is not None:
            raise ValueError("approvedAt is only valid on approved documents")
        return self


# ===========================================
# Audit Log
# ===========================================

class CaseAuditEntry(CamelModel):
    """One immutable record of a case mutation."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    action: str = Field(..., min_length=1)
    details: str = ""
    actor_id: str
    actor_name: str
    timestamp: AwareDatetime


# ===========================================
# Case Aggregate
# ===========================================

class ConflictCase(CamelModel):
    """Aggregate root: owns every employee, document, analysis and audit entry."""
    id: UUID
    case_number: str
    type: CaseType = "CONFLICT"
    status: CaseStatus = "DRAFT"
    incident_date: AwareDatetime
    location: str = ""
    department: str = ""
    shift: Optional[str] = None

    involved_employees: list[InvolvedEmployee] = Field(default_factory=list)
    documents: list[CaseDocument] = Field(default_factory=list)

    comparison_result: Optional[AIComparisonResult] = None
    policy_matches: list[PolicyMatch] = Field(default_factory=list)
    recommendations: list[AIRecommendation] = Field(default_factory=list)

    selected_action: Optional[RecommendedAction] = None
    generated_document: Optional[GeneratedActionDocument] = None

    supervisor_notes: Optional[str] = None
    audit_log: list[CaseAuditEntry] = Field(default_factory=list)

    created_by: str
    created_at: AwareDatetime
    updated_at: AwareDatetime
    closed_at: Optional[AwareDatetime] = None
    active_policy_id: Optional[UUID] = None

    # updatedAt as last read from (or written to) the repository
    _persisted_updated_at: Optional[AwareDatetime] = PrivateAttr(default=None)

    @model_validator(mode="after")
    def validate_aggregate(self):
        if not CASE_NUMBER_PATTERN.match(self.case_number):
            raise ValueError(f"Malformed case number '{self.case_number}'")

        document_ids = [doc.id for doc in self.documents]
        if len(document_ids) != len(set(document_ids)):
            raise ValueError("Document ids must be unique within a case")
        for doc_type in ("COMPLAINT_A", "COMPLAINT_B"):
            if sum(1 for doc in self.documents if doc.type == doc_type) > 1:
                raise ValueError(f"At most one {doc_type} document is allowed")

        if (self.status in TERMINAL_STATUSES) != (self.closed_at is not None):
            raise ValueError("closedAt must be set exactly when the case is closed or escalated")
        if self.selected_action is not None and not any(
            rec.action == self.selected_action for rec in self.recommendations
        ):
            raise ValueError("selectedAction must match an existing recommendation")
        if (
            self.generated_document is not None
            and self.generated_document.action_type != self.selected_action
        ):
            raise ValueError("generatedDocument must be drafted for the selected action")
        return self

    # Parties

    @property
    def complainants(self) -> list[InvolvedEmployee]:
        return [emp for emp in self.involved_employees if emp.is_complainant]

    @property
    def party_a(self) -> Optional[InvolvedEmployee]:
        complainants = self.complainants
        return complainants[0] if complainants else None

    @property
    def party_b(self) -> Optional[InvolvedEmployee]:
        complainants = self.complainants
        return complainants[1] if len(complainants) > 1 else None

    @property
    def witnesses(self) -> list[InvolvedEmployee]:
        """Everyone who is not Party A or Party B."""
        parties = {emp.id for emp in self.complainants[:2]}
        return [emp for emp in self.involved_employees if emp.id not in parties]

    # Documents

    @property
    def complaint_document_a(self) -> Optional[CaseDocument]:
        return next((doc for doc in self.documents if doc.type == "COMPLAINT_A"), None)

    @property
    def complaint_document_b(self) -> Optional[CaseDocument]:
        return next((doc for doc in self.documents if doc.type == "COMPLAINT_B"), None)

    @property
    def witness_statements(self) -> list[CaseDocument]:
        return [doc for doc in self.documents if doc.type == "WITNESS_STATEMENT"]

    def find_document(self, document_id: UUID) -> Optional[CaseDocument]:
        return next((doc for doc in self.documents if doc.id == document_id), None)

    # Lifecycle

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def display_title(self) -> str:
        return f"Case #{self.case_number}"

    @property
    def persisted_updated_at(self) -> Optional[AwareDatetime]:
        return self._persisted_updated_at

    def mark_persisted(self, updated_at: AwareDatetime) -> None:
        """Record the updatedAt value the repository holds for this case."""
        self._persisted_updated_at = updated_at
