"""Append-only audit trail for conflict cases.

Entries live inside the case aggregate. The only writer is ``AuditTrail.append``,
which the case operations call after their preconditions pass; nothing ever
updates or removes an entry.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..models.conflict_case import Actor, CaseAuditEntry, ConflictCase
from .identity import IdentitySource

logger = logging.getLogger(__name__)


# Case lifecycle
CASE_CREATED = "case_created"
CASE_OPENED = "case_opened"
CASE_SUBMITTED_FOR_REVIEW = "case_submitted_for_review"
CASE_AWAITING_ACTION = "case_awaiting_action"
CASE_CLOSED = "case_closed"
CASE_ESCALATED = "case_escalated"
CASE_EXPORTED = "case_exported"
EMPLOYEE_ADDED = "employee_added"
SUPERVISOR_NOTES_UPDATED = "supervisor_notes_updated"

# Document ledger
DOCUMENT_ATTACHED = "document_attached"
DOCUMENT_REMOVED = "document_removed"
DOCUMENT_EDITED = "document_edited"
DOCUMENT_TRANSLATED = "document_translated"
EMPLOYEE_REVIEW_RECORDED = "employee_review_recorded"
EMPLOYEE_SIGNATURE_RECORDED = "employee_signature_recorded"
SUPERVISOR_CERTIFIED = "supervisor_certified"

# Analysis and decision
COMPARISON_ACCEPTED = "comparison_accepted"
POLICY_MATCH_ADDED = "policy_match_added"
RECOMMENDATION_ADDED = "recommendation_added"
ACTION_SELECTED = "action_selected"
ACTION_DOCUMENT_GENERATED = "action_document_generated"
ACTION_DOCUMENT_EDITED = "action_document_edited"
ACTION_DOCUMENT_APPROVED = "action_document_approved"


class AuditTrail:
    def __init__(self, identity: IdentitySource):
        self.identity = identity

    def append(
        self,
        case: ConflictCase,
        action: str,
        details: str,
        actor: Actor,
    ) -> CaseAuditEntry:
        """Append an entry and bump the case's updatedAt to its timestamp."""
        entry = CaseAuditEntry(
            id=self.identity.new_id(),
            action=action,
            details=details,
            actor_id=actor.id,
            actor_name=actor.name,
            timestamp=self.identity.now(),
        )
        case.audit_log.append(entry)
        case.updated_at = entry.timestamp
        logger.debug("Audit %s on case %s by %s", action, case.case_number, actor.id)
        return entry

    @staticmethod
    def entries(case: ConflictCase, action: Optional[str] = None) -> list[CaseAuditEntry]:
        """Entries in timestamp order; insertion order breaks ties."""
        ordered = sorted(case.audit_log, key=lambda entry: entry.timestamp)
        if action is None:
            return ordered
        return [entry for entry in ordered if entry.action == action]

    @staticmethod
    def is_ordered(case: ConflictCase) -> bool:
        """True when the stored log is already in timestamp order."""
        return all(
            earlier.timestamp <= later.timestamp
            for earlier, later in zip(case.audit_log, case.audit_log[1:])
        )
