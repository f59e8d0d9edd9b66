import copy
from datetime import datetime, timezone

import pytest

from app.conflict.models.conflict_case import Actor
from app.conflict.services.analysis_aggregator import AnalysisAggregator
from app.conflict.services.audit_trail import AuditTrail
from app.conflict.services.case_state_machine import CaseStateMachine
from app.conflict.services.document_ledger import DocumentLedger
from app.conflict.services.identity import SeededIdentitySource


CASE_NUMBER = "CR-20250601-4821"
INCIDENT_DATE = datetime(2025, 5, 30, 22, 15, tzinfo=timezone.utc)

COMPARISON_PAYLOAD = {
    "timelineDifferences": ["A says the argument started at 10pm, B says 10:30pm"],
    "agreementPoints": ["Both were working the closing shift"],
    "contradictions": ["Who raised their voice first"],
    "emotionalLanguage": ["'he always does this'"],
    "missingDetails": ["No mention of the shift lead"],
    "neutralSummary": "Two coworkers disagree about a heated exchange at close.",
    "sideBySideComparison": [
        {
            "topic": "Start of the argument",
            "partyAVersion": "B shouted about the schedule",
            "partyBVersion": "A refused to swap stations",
            "status": "contradiction",
        }
    ],
    "generatedAt": "2025-06-01T10:00:00Z",
}


def recommendation_payload(action="COACHING", confidence=0.8):
    return {
        "action": action,
        "reasoning": "First incident for both employees",
        "riskAssessment": "Low risk of recurrence",
        "suggestedNextSteps": ["Schedule a one-on-one", "Follow up in two weeks"],
        "confidence": confidence,
    }


@pytest.fixture
def identity():
    return SeededIdentitySource(seed=7)


@pytest.fixture
def actor():
    return Actor(id="sup-1", name="Dana Reyes")


@pytest.fixture
def audit_trail(identity):
    return AuditTrail(identity)


@pytest.fixture
def machine(identity, audit_trail):
    return CaseStateMachine(identity, audit_trail)


@pytest.fixture
def ledger(identity, audit_trail):
    return DocumentLedger(identity, audit_trail, app_version="2.4.0")


@pytest.fixture
def aggregator(identity, audit_trail):
    return AnalysisAggregator(identity, audit_trail)


@pytest.fixture
def draft_case(machine, actor):
    employees = [
        machine.new_employee("Alex Kim", role="Line Cook", department="Kitchen", is_complainant=True),
        machine.new_employee("Blair Osei", role="Prep Cook", department="Kitchen", is_complainant=True),
        machine.new_employee("Casey Lin", role="Dishwasher", department="Kitchen"),
    ]
    return machine.create_case(
        actor,
        incident_date=INCIDENT_DATE,
        location="Store 12",
        department="Kitchen",
        shift="Closing",
        involved_employees=employees,
        case_number=CASE_NUMBER,
    )


@pytest.fixture
def in_progress_case(machine, actor, draft_case):
    machine.open_case(draft_case, actor)
    return draft_case


@pytest.fixture
def documented_case(ledger, actor, in_progress_case):
    """In progress, with both complaint statements attached."""
    case = in_progress_case
    ledger.attach(
        case,
        actor,
        ledger.new_document(
            "COMPLAINT_A",
            raw_text="B shouted at me about the schedule.",
            cleaned_text="B shouted at me about the schedule.",
            original_image_urls=["scans/a-1.jpg"],
            employee_id=case.party_a.id,
        ),
    )
    ledger.attach(
        case,
        actor,
        ledger.new_document(
            "COMPLAINT_B",
            raw_text="A refused to swap stations.",
            cleaned_text="A refused to swap stations.",
            original_image_urls=["scans/b-1.jpg"],
            employee_id=case.party_b.id,
        ),
    )
    return case


@pytest.fixture
def pending_review_case(machine, aggregator, actor, documented_case):
    aggregator.accept_comparison(documented_case, actor, COMPARISON_PAYLOAD)
    machine.submit_for_review(documented_case, actor)
    return documented_case


@pytest.fixture
def awaiting_action_case(machine, aggregator, actor, pending_review_case):
    aggregator.add_recommendation(pending_review_case, actor, recommendation_payload("COACHING", 0.82))
    aggregator.add_recommendation(
        pending_review_case, actor, recommendation_payload("ESCALATE_TO_HR", 0.35)
    )
    machine.mark_awaiting_action(pending_review_case, actor)
    return pending_review_case


@pytest.fixture
def comparison_payload():
    return copy.deepcopy(COMPARISON_PAYLOAD)


@pytest.fixture
def make_recommendation():
    return recommendation_payload
