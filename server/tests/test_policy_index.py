from datetime import datetime, timezone
from uuid import UUID

import pytest

from app.conflict.models.policy import PolicySection, WorkplacePolicy
from app.conflict.services.errors import CaseValidationError, PolicyStructureError
from app.conflict.services.policy_index import PolicyIndex, activate_policy, parse_policy


def _uuid(n: int) -> UUID:
    return UUID(f"00000000-0000-4000-8000-{n:012d}")


ROOT_ID = _uuid(1)
CHILD_ID = _uuid(2)
GRANDCHILD_ID = _uuid(3)
REPORTING_ID = _uuid(4)


def _policy(**overrides) -> WorkplacePolicy:
    data = dict(
        id=_uuid(100),
        name="Workplace Conduct",
        version="2.0",
        status="ACTIVE",
        organization_id="org-1",
        sections=[
            PolicySection(
                id=ROOT_ID,
                section_number="3",
                title="Conduct",
                content="Standards of conduct for all staff.",
                type="OVERVIEW",
                order_index=0,
            ),
            PolicySection(
                id=GRANDCHILD_ID,
                section_number="3.1.1",
                title="Raised Voices",
                content="Shouting at a coworker is a violation.",
                type="VIOLATIONS",
                keywords=["yelling"],
                parent_section_id=CHILD_ID,
                order_index=0,
            ),
            PolicySection(
                id=CHILD_ID,
                section_number="3.1",
                title="Respectful Communication",
                content="Speak to coworkers with courtesy.",
                type="GUIDELINES",
                keywords=["Harassment", "tone"],
                parent_section_id=ROOT_ID,
                order_index=1,
            ),
            PolicySection(
                id=REPORTING_ID,
                section_number="4",
                title="Reporting Concerns",
                content="Report harassment to a supervisor.",
                type="REPORTING",
                order_index=1,
            ),
        ],
    )
    data.update(overrides)
    return WorkplacePolicy(**data)


def test_search_matches_title_content_and_keywords_case_insensitively():
    policy = _policy()

    assert [s.id for s in PolicyIndex.search(policy, "RAISED")] == [GRANDCHILD_ID]
    assert [s.id for s in PolicyIndex.search(policy, "yell")] == [GRANDCHILD_ID]
    assert [s.id for s in PolicyIndex.search(policy, "harassment")] == [CHILD_ID, REPORTING_ID]


def test_search_keeps_policy_order_and_filters_by_type():
    policy = _policy()

    assert [s.id for s in PolicyIndex.search(policy, "coworker")] == [GRANDCHILD_ID, CHILD_ID]
    assert [s.id for s in PolicyIndex.search(policy, "harassment", "REPORTING")] == [REPORTING_ID]


def test_blank_query_matches_nothing():
    assert PolicyIndex.search(_policy(), "   ") == []


def test_tree_navigation():
    policy = _policy()

    assert [s.id for s in PolicyIndex.top_level_sections(policy)] == [ROOT_ID, REPORTING_ID]
    assert [s.id for s in PolicyIndex.child_sections(policy, ROOT_ID)] == [CHILD_ID]
    assert [s.id for s in PolicyIndex.section_path(policy, GRANDCHILD_ID)] == [
        ROOT_ID,
        CHILD_ID,
        GRANDCHILD_ID,
    ]
    assert [s.id for s in PolicyIndex.sections_of_type(policy, "GUIDELINES")] == [CHILD_ID]
    assert PolicyIndex.get_section(policy, _uuid(999)) is None


def test_section_path_for_unknown_section():
    with pytest.raises(CaseValidationError, match="not part of policy"):
        PolicyIndex.section_path(_policy(), _uuid(999))


def test_index_rejects_parent_cycle():
    policy = _policy()
    policy.sections[0].parent_section_id = GRANDCHILD_ID

    with pytest.raises(PolicyStructureError, match="invalid section tree") as exc_info:
        PolicyIndex([policy])
    assert "parent cycle" in exc_info.value.problems[0]


def test_index_rejects_dangling_parent():
    policy = _policy()
    policy.sections[3].parent_section_id = _uuid(555)

    with pytest.raises(PolicyStructureError) as exc_info:
        PolicyIndex().index(policy)
    assert "missing parent" in exc_info.value.problems[0]


def test_parse_policy_from_camel_case_json():
    policy = _policy()
    parsed = parse_policy(policy.model_dump_json(by_alias=True))

    assert parsed.id == policy.id
    assert parsed.sections[1].parent_section_id == CHILD_ID


def test_parse_policy_reports_shape_problems():
    with pytest.raises(CaseValidationError, match="Invalid workplace policy") as exc_info:
        parse_policy({"id": str(_uuid(1)), "name": "", "sections": [{"title": "x"}]})
    problems = " ".join(exc_info.value.problems)
    assert "name" in problems
    assert "sections.0.id" in problems


def test_activate_policy_supersedes_active_policy_of_same_org():
    now = datetime(2025, 6, 2, tzinfo=timezone.utc)
    current = _policy()
    draft = _policy(id=_uuid(101), version="3.0", status="DRAFT")
    other_org = _policy(id=_uuid(102), organization_id="org-2")

    activated = activate_policy([current, draft, other_org], draft.id, now)

    assert activated is draft
    assert draft.is_active
    assert current.status == "SUPERSEDED"
    assert current.updated_at == now
    assert other_org.status == "ACTIVE"


def test_activate_unknown_policy():
    with pytest.raises(CaseValidationError, match="not found"):
        activate_policy([_policy()], _uuid(404), datetime(2025, 6, 2, tzinfo=timezone.utc))
