from datetime import datetime

import pytest

from app.conflict.services import audit_trail as audit
from app.conflict.services.document_ledger import (
    compute_version_hash,
    document_version_hash,
    verify_case_integrity,
    verify_document,
)
from app.conflict.services.errors import (
    AlreadyCertifiedError,
    AlreadyReviewedError,
    AlreadySignedError,
    CaseLockedError,
    CaseValidationError,
    DocumentNotFoundError,
    DuplicateDocumentTypeError,
    ReviewRequiredFirstError,
    SignatureRequiredFirstError,
    TimestampOrderError,
)


BASE_CONTENT = {
    "raw_text": "raw statement",
    "translated_text": None,
    "cleaned_text": "clean statement",
    "original_image_urls": ["scans/p1.jpg"],
    "processed_image_urls": ["processed/p1.png"],
}


def test_version_hash_is_stable_sha256():
    first = compute_version_hash(**BASE_CONTENT)
    second = compute_version_hash(**dict(BASE_CONTENT))
    assert first == second
    assert len(first) == 64
    int(first, 16)


@pytest.mark.parametrize(
    "field,value",
    [
        ("raw_text", "raw statement."),
        ("translated_text", "declaracion"),
        ("cleaned_text", "clean statement!"),
        ("original_image_urls", ["scans/p1.jpg", "scans/p2.jpg"]),
        ("processed_image_urls", []),
    ],
)
def test_version_hash_changes_with_each_hashed_field(field, value):
    changed = {**BASE_CONTENT, field: value}
    assert compute_version_hash(**changed) != compute_version_hash(**BASE_CONTENT)


def test_image_order_is_part_of_the_hash():
    forward = {**BASE_CONTENT, "original_image_urls": ["a.jpg", "b.jpg"]}
    reverse = {**BASE_CONTENT, "original_image_urls": ["b.jpg", "a.jpg"]}
    assert compute_version_hash(**forward) != compute_version_hash(**reverse)


def test_attach_stamps_hash_and_app_version(ledger, actor, in_progress_case):
    document = ledger.new_document("COMPLAINT_A", raw_text="raw", cleaned_text="clean")

    attached = ledger.attach(in_progress_case, actor, document)

    assert attached.version_hash == document_version_hash(document)
    assert attached.app_version == "2.4.0"
    assert document.version_hash is None
    assert in_progress_case.complaint_document_a.id == document.id
    assert in_progress_case.audit_log[-1].action == audit.DOCUMENT_ATTACHED
    assert attached.version_hash in in_progress_case.audit_log[-1].details


def test_second_complaint_a_is_rejected(ledger, actor, in_progress_case):
    ledger.attach(in_progress_case, actor, ledger.new_document("COMPLAINT_A", raw_text="first"))
    log_length = len(in_progress_case.audit_log)

    with pytest.raises(DuplicateDocumentTypeError, match="already has a COMPLAINT_A"):
        ledger.attach(in_progress_case, actor, ledger.new_document("COMPLAINT_A", raw_text="second"))

    assert len(in_progress_case.documents) == 1
    assert in_progress_case.documents[0].raw_text == "first"
    assert len(in_progress_case.audit_log) == log_length


def test_witness_statements_may_repeat(ledger, actor, in_progress_case):
    for text in ("saw it", "heard it"):
        ledger.attach(in_progress_case, actor, ledger.new_document("WITNESS_STATEMENT", raw_text=text))
    assert [doc.raw_text for doc in in_progress_case.witness_statements] == ["saw it", "heard it"]


def test_attach_rejects_mismatched_supplied_hash(ledger, actor, in_progress_case):
    document = ledger.new_document("EVIDENCE", raw_text="photo notes")
    document.version_hash = "0" * 64

    with pytest.raises(CaseValidationError, match="does not match"):
        ledger.attach(in_progress_case, actor, document)
    assert in_progress_case.documents == []


def test_attach_rejects_unknown_employee(ledger, machine, actor, in_progress_case):
    stranger = machine.new_employee("Not On Case")
    document = ledger.new_document("OTHER", raw_text="note", employee_id=stranger.id)

    with pytest.raises(CaseValidationError, match="not on the case"):
        ledger.attach(in_progress_case, actor, document)


def test_signature_before_review_is_rejected(ledger, identity, actor, documented_case):
    document = documented_case.complaint_document_a
    log_length = len(documented_case.audit_log)

    with pytest.raises(ReviewRequiredFirstError):
        ledger.record_employee_signature(
            documented_case, actor, document.id, "data:image/png;base64,AAAA", identity.now()
        )

    assert document.signature_image is None
    assert document.employee_signature_timestamp is None
    assert len(documented_case.audit_log) == log_length


def test_review_sign_certify_sequence(ledger, identity, actor, documented_case):
    document = documented_case.complaint_document_a

    ledger.record_employee_review(documented_case, actor, document.id, identity.now())
    with pytest.raises(SignatureRequiredFirstError):
        ledger.certify_supervisor(
            documented_case, actor, document.id, "sup-1", "Dana Reyes", identity.now()
        )
    ledger.record_employee_signature(
        documented_case, actor, document.id, "data:image/png;base64,AAAA", identity.now()
    )
    ledger.certify_supervisor(documented_case, actor, document.id, "sup-1", "Dana Reyes", identity.now())

    assert document.is_certified
    assert document.employee_review_timestamp < document.employee_signature_timestamp
    assert document.employee_signature_timestamp < document.supervisor_certification_timestamp
    assert [entry.action for entry in documented_case.audit_log[-3:]] == [
        audit.EMPLOYEE_REVIEW_RECORDED,
        audit.EMPLOYEE_SIGNATURE_RECORDED,
        audit.SUPERVISOR_CERTIFIED,
    ]

    with pytest.raises(AlreadyReviewedError):
        ledger.record_employee_review(documented_case, actor, document.id, identity.now())
    with pytest.raises(AlreadySignedError):
        ledger.record_employee_signature(documented_case, actor, document.id, "sig", identity.now())
    with pytest.raises(AlreadyCertifiedError):
        ledger.certify_supervisor(documented_case, actor, document.id, "sup-1", "Dana", identity.now())


def test_review_cannot_precede_document_creation(ledger, actor, documented_case):
    document = documented_case.complaint_document_b
    with pytest.raises(TimestampOrderError):
        ledger.record_employee_review(documented_case, actor, document.id, documented_case.created_at)
    assert document.employee_review_timestamp is None


def test_unknown_document_is_reported(ledger, identity, actor, documented_case):
    with pytest.raises(DocumentNotFoundError):
        ledger.record_employee_review(documented_case, actor, identity.new_id(), identity.now())


def test_edit_text_rehashes_and_keeps_history(ledger, actor, documented_case):
    document = documented_case.complaint_document_a
    original_hash = document.version_hash

    ledger.edit_text(documented_case, actor, document.id, "B raised their voice about the schedule.")

    assert document.version_hash != original_hash
    assert document.version_hash_history == [original_hash]
    assert verify_document(document)
    assert documented_case.audit_log[-1].action == audit.DOCUMENT_EDITED


def test_edit_text_with_same_text_is_a_no_op(ledger, actor, documented_case):
    document = documented_case.complaint_document_a
    log_length = len(documented_case.audit_log)

    ledger.edit_text(documented_case, actor, document.id, document.cleaned_text)

    assert document.version_hash_history == []
    assert len(documented_case.audit_log) == log_length


def test_edit_after_submission_is_locked(ledger, actor, pending_review_case):
    document = pending_review_case.complaint_document_a
    original = document.cleaned_text

    with pytest.raises(CaseLockedError, match="while case is PENDING_REVIEW"):
        ledger.edit_text(pending_review_case, actor, document.id, "rewritten")

    assert document.cleaned_text == original
    assert document.version_hash_history == []


def test_record_translation_rehashes(ledger, actor, documented_case):
    document = documented_case.complaint_document_b
    original_hash = document.version_hash

    ledger.record_translation(
        documented_case, actor, document.id, "A se nego a cambiar de estacion.", "es"
    )

    assert document.translated_text == "A se nego a cambiar de estacion."
    assert document.detected_language == "es"
    assert document.version_hash_history == [original_hash]
    assert verify_document(document)


def test_remove_document(ledger, actor, documented_case):
    document = documented_case.complaint_document_b

    ledger.remove_document(documented_case, actor, document.id)

    assert documented_case.complaint_document_b is None
    assert documented_case.audit_log[-1].action == audit.DOCUMENT_REMOVED
    assert document.version_hash in documented_case.audit_log[-1].details


def test_remove_document_locked_after_submission(ledger, actor, pending_review_case):
    with pytest.raises(CaseLockedError):
        ledger.remove_document(pending_review_case, actor, pending_review_case.documents[0].id)
    assert len(pending_review_case.documents) == 2


def test_verify_case_integrity_detects_tampering(documented_case):
    assert verify_case_integrity(documented_case) == []

    tampered = documented_case.complaint_document_a
    tampered.cleaned_text = "something else entirely"

    mismatches = verify_case_integrity(documented_case)
    assert len(mismatches) == 1
    assert mismatches[0].document_id == tampered.id
    assert mismatches[0].stored_hash == tampered.version_hash


def test_compared_complaint_cannot_be_removed(
    ledger, aggregator, machine, actor, documented_case, comparison_payload
):
    aggregator.accept_comparison(documented_case, actor, comparison_payload)
    original = documented_case.complaint_document_a
    log_length = len(documented_case.audit_log)

    with pytest.raises(CaseLockedError, match="accepted comparison"):
        ledger.remove_document(documented_case, actor, original.id)

    assert documented_case.complaint_document_a is original
    assert len(documented_case.audit_log) == log_length
    with pytest.raises(DuplicateDocumentTypeError):
        ledger.attach(
            documented_case,
            actor,
            ledger.new_document("COMPLAINT_A", raw_text="an entirely different story"),
        )
    machine.submit_for_review(documented_case, actor)
    assert documented_case.complaint_document_a.id == original.id


def test_compared_complaint_text_is_frozen(ledger, aggregator, actor, documented_case, comparison_payload):
    aggregator.accept_comparison(documented_case, actor, comparison_payload)
    document = documented_case.complaint_document_b

    with pytest.raises(CaseLockedError):
        ledger.edit_text(documented_case, actor, document.id, "A was fine, actually.")
    assert document.cleaned_text == "A refused to swap stations."


def test_witness_statement_removable_after_comparison(
    ledger, aggregator, actor, documented_case, comparison_payload
):
    witness = ledger.attach(
        documented_case, actor, ledger.new_document("WITNESS_STATEMENT", raw_text="saw it")
    )
    aggregator.accept_comparison(documented_case, actor, comparison_payload)

    ledger.remove_document(documented_case, actor, witness.id)
    assert documented_case.witness_statements == []


@pytest.mark.parametrize("operation", ["review", "signature", "certification"])
def test_naive_timestamps_are_validation_errors(ledger, actor, documented_case, operation):
    document = documented_case.complaint_document_a
    naive = datetime(2025, 6, 2, 9, 0)

    with pytest.raises(CaseValidationError, match="timezone-aware"):
        if operation == "review":
            ledger.record_employee_review(documented_case, actor, document.id, naive)
        elif operation == "signature":
            ledger.record_employee_signature(documented_case, actor, document.id, "sig", naive)
        else:
            ledger.certify_supervisor(documented_case, actor, document.id, "sup-1", "Dana", naive)

    assert document.employee_review_timestamp is None


def test_new_document_reports_invalid_fields(ledger):
    with pytest.raises(CaseValidationError, match="Invalid document") as exc_info:
        ledger.new_document("COMPLAINT_A", raw_text="text", page_count=0)
    assert exc_info.value.problems[0].split(":")[0] in ("pageCount", "page_count")
