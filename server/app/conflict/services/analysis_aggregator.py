"""Merges AI comparison, policy matching and recommendation results into a case.

Nothing here recomputes analysis; results are validated for shape, stamped
with ids and appended. The comparison is accepted once per case.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, get_args

from ..models.conflict_case import (
    Actor,
    AIComparisonResult,
    AIRecommendation,
    ConflictCase,
    PolicyMatch,
    RecommendedAction,
)
from . import audit_trail as audit
from .analysis_payloads import (
    PolicyMatchPayload,
    RecommendationPayload,
    parse_comparison_result,
    parse_policy_match,
    parse_recommendation,
)
from .audit_trail import AuditTrail
from .case_state_machine import (
    DECISION_STATUSES,
    can_run_comparison,
    ensure_mutable,
    ensure_status,
    missing_evidence,
    rejection,
)
from .errors import (
    ActionAlreadySelectedError,
    ActionNotRecommendedError,
    CaseValidationError,
    ComparisonAlreadyPresentError,
    MissingEvidenceError,
)
from .identity import IdentitySource
from .policy_index import PolicyIndex

logger = logging.getLogger(__name__)

RECOMMENDED_ACTIONS: tuple[str, ...] = get_args(RecommendedAction)


class AnalysisAggregator:
    def __init__(
        self,
        identity: IdentitySource,
        audit_trail: Optional[AuditTrail] = None,
        *,
        policy_index: Optional[PolicyIndex] = None,
    ):
        self.identity = identity
        self.audit = audit_trail or AuditTrail(identity)
        self.policy_index = policy_index

    def accept_comparison(
        self,
        case: ConflictCase,
        actor: Actor,
        result: AIComparisonResult | dict[str, Any] | str,
    ) -> AIComparisonResult:
        """Accept the comparison of the two complaints. One per case."""
        comparison = parse_comparison_result(result)
        ensure_mutable(case, "accept a comparison")
        if case.comparison_result is not None:
            raise rejection(
                case, ComparisonAlreadyPresentError("The case already has an accepted comparison")
            )
        if not can_run_comparison(case):
            missing = ", ".join(item for item in missing_evidence(case) if "comparison" not in item)
            raise rejection(
                case, MissingEvidenceError(f"Comparison needs both complaint statements: {missing}")
            )

        # Party names follow the case's A/B assignment when the result omits them
        updates = {}
        if not comparison.party_a_name and case.party_a is not None:
            updates["party_a_name"] = case.party_a.name
        if not comparison.party_b_name and case.party_b is not None:
            updates["party_b_name"] = case.party_b.name
        if updates:
            comparison = comparison.model_copy(update=updates)

        case.comparison_result = comparison
        self.audit.append(
            case,
            audit.COMPARISON_ACCEPTED,
            f"Accepted comparison generated at {comparison.generated_at.isoformat()} "
            f"({len(comparison.contradictions)} contradiction(s), "
            f"{len(comparison.agreement_points)} agreement point(s))",
            actor,
        )
        logger.info("Comparison accepted on case %s", case.case_number)
        return comparison

    def _check_policy_section(self, case: ConflictCase, payload: PolicyMatchPayload) -> None:
        if self.policy_index is None or case.active_policy_id is None:
            return
        policy = self.policy_index.get(case.active_policy_id)
        if policy is None:
            return
        if self.policy_index.get_section(policy, payload.policy_section_id) is None:
            raise CaseValidationError(
                f"Section {payload.policy_section_id} is not part of policy '{policy.name}'"
            )

    def add_policy_match(
        self,
        case: ConflictCase,
        actor: Actor,
        match: PolicyMatchPayload | dict[str, Any] | str,
    ) -> PolicyMatch:
        """Append a policy match. Repeated matches for one section are kept."""
        payload = parse_policy_match(match)
        ensure_mutable(case, "add a policy match")
        self._check_policy_section(case, payload)

        policy_match = PolicyMatch(id=self.identity.new_id(), **payload.model_dump())
        case.policy_matches.append(policy_match)
        self.audit.append(
            case,
            audit.POLICY_MATCH_ADDED,
            f"Matched policy section {policy_match.section_number} '{policy_match.section_title}' "
            f"(confidence {policy_match.match_confidence:.2f})",
            actor,
        )
        return policy_match

    def add_recommendation(
        self,
        case: ConflictCase,
        actor: Actor,
        recommendation: RecommendationPayload | dict[str, Any] | str,
    ) -> AIRecommendation:
        payload = parse_recommendation(recommendation)
        ensure_mutable(case, "add a recommendation")

        rec = AIRecommendation(id=self.identity.new_id(), **payload.model_dump())
        case.recommendations.append(rec)
        self.audit.append(
            case,
            audit.RECOMMENDATION_ADDED,
            f"Recommended {rec.action} (confidence {rec.confidence:.2f})",
            actor,
        )
        return rec

    def select_action(self, case: ConflictCase, actor: Actor, action: str) -> None:
        """Record the supervisor's chosen action.

        The action must be one of the recommended actions. Re-selecting the same
        action is a no-op; choosing a different one is rejected.
        """
        if action not in RECOMMENDED_ACTIONS:
            raise CaseValidationError(
                f"Unknown action '{action}'. Allowed actions: {', '.join(RECOMMENDED_ACTIONS)}"
            )
        ensure_status(case, DECISION_STATUSES, "select an action")
        if case.selected_action is not None:
            if case.selected_action == action:
                return
            raise rejection(
                case,
                ActionAlreadySelectedError(
                    f"Action {case.selected_action} is already selected; cannot select {action}"
                ),
            )
        if not any(rec.action == action for rec in case.recommendations):
            raise rejection(
                case, ActionNotRecommendedError(f"Action {action} was not recommended for this case")
            )

        case.selected_action = action
        self.audit.append(case, audit.ACTION_SELECTED, f"Selected action {action}", actor)
        logger.info("Action %s selected on case %s", action, case.case_number)
