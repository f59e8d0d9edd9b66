"""Workplace policy index used for policy matching.

The index only looks things up. Ranking belongs to the AI collaborator, which
reports it as PolicyMatch.match_confidence.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from ..models.policy import PolicySection, PolicySectionType, WorkplacePolicy
from .analysis_payloads import parse_model
from .errors import CaseValidationError, PolicyStructureError

logger = logging.getLogger(__name__)


def validate_policy_structure(policy: WorkplacePolicy) -> None:
    """Reject duplicate ids, dangling parents, and parent cycles."""
    by_id: dict[UUID, PolicySection] = {}
    problems: list[str] = []
    for section in policy.sections:
        if section.id in by_id:
            problems.append(f"duplicate section id {section.id}")
        by_id[section.id] = section

    for section in policy.sections:
        parent_id = section.parent_section_id
        if parent_id is not None and parent_id not in by_id:
            problems.append(f"section {section.display_title!r} references missing parent {parent_id}")

    if problems:
        raise PolicyStructureError(f"Policy '{policy.name}' has an invalid section tree", problems)

    for section in policy.sections:
        seen = {section.id}
        parent_id = section.parent_section_id
        while parent_id is not None:
            if parent_id in seen:
                raise PolicyStructureError(
                    f"Policy '{policy.name}' has an invalid section tree",
                    [f"section {section.display_title!r} is part of a parent cycle"],
                )
            seen.add(parent_id)
            parent_id = by_id[parent_id].parent_section_id


def parse_policy(raw_value: Any) -> WorkplacePolicy:
    """Validate an uploaded policy payload (dict or JSON string)."""
    policy = parse_model(WorkplacePolicy, raw_value, label="workplace policy")
    validate_policy_structure(policy)
    return policy


def _section_matches(section: PolicySection, needle: str) -> bool:
    return (
        needle in section.title.lower()
        or needle in section.content.lower()
        or any(needle in keyword.lower() for keyword in section.keywords)
    )


class PolicyIndex:
    def __init__(self, policies: Iterable[WorkplacePolicy] = ()):
        self._policies: dict[UUID, WorkplacePolicy] = {}
        for policy in policies:
            self.index(policy)

    def index(self, policy: WorkplacePolicy) -> None:
        validate_policy_structure(policy)
        self._policies[policy.id] = policy

    def get(self, policy_id: UUID) -> Optional[WorkplacePolicy]:
        return self._policies.get(policy_id)

    def policies(self) -> list[WorkplacePolicy]:
        return list(self._policies.values())

    @staticmethod
    def search(
        policy: WorkplacePolicy,
        query: str,
        section_type: Optional[PolicySectionType] = None,
    ) -> list[PolicySection]:
        """Case-insensitive substring search over title, content and keywords.

        Results keep the policy's section order. A blank query matches nothing.
        """
        needle = query.strip().lower()
        if not needle:
            return []
        return [
            section
            for section in policy.sections
            if (section_type is None or section.type == section_type)
            and _section_matches(section, needle)
        ]

    @staticmethod
    def sections_of_type(policy: WorkplacePolicy, section_type: PolicySectionType) -> list[PolicySection]:
        return [section for section in policy.sections if section.type == section_type]

    @staticmethod
    def get_section(policy: WorkplacePolicy, section_id: UUID) -> Optional[PolicySection]:
        return next((section for section in policy.sections if section.id == section_id), None)

    @staticmethod
    def top_level_sections(policy: WorkplacePolicy) -> list[PolicySection]:
        return sorted(
            (section for section in policy.sections if section.parent_section_id is None),
            key=lambda section: section.order_index,
        )

    @staticmethod
    def child_sections(policy: WorkplacePolicy, parent_id: UUID) -> list[PolicySection]:
        return sorted(
            (section for section in policy.sections if section.parent_section_id == parent_id),
            key=lambda section: section.order_index,
        )

    @staticmethod
    def section_path(policy: WorkplacePolicy, section_id: UUID) -> list[PolicySection]:
        """Ancestors of a section from the root down, ending with the section."""
        by_id = {section.id: section for section in policy.sections}
        if section_id not in by_id:
            raise CaseValidationError(f"Section {section_id} is not part of policy '{policy.name}'")
        path: list[PolicySection] = []
        visited: set[UUID] = set()
        current: Optional[UUID] = section_id
        while current is not None:
            if current in visited or current not in by_id:
                raise PolicyStructureError(f"Policy '{policy.name}' has an invalid section tree")
            visited.add(current)
            section = by_id[current]
            path.append(section)
            current = section.parent_section_id
        path.reverse()
        return path


def activate_policy(
    policies: list[WorkplacePolicy],
    policy_id: UUID,
    now: datetime,
) -> WorkplacePolicy:
    """Activate one policy and supersede any other active policy of its organization."""
    target = next((policy for policy in policies if policy.id == policy_id), None)
    if target is None:
        raise CaseValidationError(f"Policy {policy_id} not found")

    for policy in policies:
        if (
            policy.id != target.id
            and policy.organization_id == target.organization_id
            and policy.status == "ACTIVE"
        ):
            policy.status = "SUPERSEDED"
            policy.updated_at = now
            logger.info("Policy %s v%s superseded by %s", policy.name, policy.version, target.name)

    target.status = "ACTIVE"
    target.updated_at = now
    return target
