"""Document ledger: attachment, review/signature/certification, integrity hashes.

The version hash is a SHA-256 over the document's text and image references.
Content edits archive the previous hash in ``version_hash_history`` before the
new one is stored, so every prior version stays provable.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..models.conflict_case import Actor, CaseDocument, CaseDocumentType, ConflictCase
from . import audit_trail as audit
from .analysis_payloads import build_model, ensure_aware
from .audit_trail import AuditTrail
from .case_state_machine import EDITABLE_STATUSES, ensure_mutable, ensure_status, rejection
from .errors import (
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
from .identity import IdentitySource

logger = logging.getLogger(__name__)

SINGLETON_DOCUMENT_TYPES: frozenset[str] = frozenset({"COMPLAINT_A", "COMPLAINT_B"})


def compute_version_hash(
    raw_text: str,
    translated_text: Optional[str],
    cleaned_text: str,
    original_image_urls: list[str],
    processed_image_urls: list[str],
) -> str:
    """SHA-256 over a canonical JSON encoding of the hashed content fields."""
    canonical = json.dumps(
        {
            "rawText": raw_text,
            "translatedText": translated_text,
            "cleanedText": cleaned_text,
            "originalImageUrls": list(original_image_urls),
            "processedImageUrls": list(processed_image_urls),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def document_version_hash(
    document: CaseDocument,
    *,
    translated_text: Optional[str] = None,
    cleaned_text: Optional[str] = None,
    keep_translation: bool = True,
) -> str:
    """Hash of ``document`` with optional replacement text fields."""
    return compute_version_hash(
        document.raw_text,
        document.translated_text if keep_translation else translated_text,
        document.cleaned_text if cleaned_text is None else cleaned_text,
        document.original_image_urls,
        document.processed_image_urls,
    )


@dataclass(frozen=True)
class IntegrityMismatch:
    document_id: UUID
    document_type: str
    stored_hash: Optional[str]
    computed_hash: str


def verify_document(document: CaseDocument) -> bool:
    return document.version_hash == document_version_hash(document)


def verify_case_integrity(case: ConflictCase) -> list[IntegrityMismatch]:
    """Documents whose stored hash no longer matches their content."""
    mismatches = []
    for document in case.documents:
        computed = document_version_hash(document)
        if document.version_hash != computed:
            mismatches.append(
                IntegrityMismatch(
                    document_id=document.id,
                    document_type=document.type,
                    stored_hash=document.version_hash,
                    computed_hash=computed,
                )
            )
    return mismatches


class DocumentLedger:
    def __init__(
        self,
        identity: IdentitySource,
        audit_trail: Optional[AuditTrail] = None,
        *,
        app_version: Optional[str] = None,
    ):
        self.identity = identity
        self.audit = audit_trail or AuditTrail(identity)
        self.app_version = app_version

    def new_document(
        self,
        type: CaseDocumentType,
        *,
        raw_text: str,
        cleaned_text: str = "",
        translated_text: Optional[str] = None,
        original_image_urls: Optional[list[str]] = None,
        processed_image_urls: Optional[list[str]] = None,
        detected_language: Optional[str] = None,
        is_handwritten: Optional[bool] = None,
        employee_id: Optional[UUID] = None,
        submitted_by: Optional[str] = None,
        submitted_by_id: Optional[str] = None,
        device_id: Optional[str] = None,
        page_count: int = 1,
    ) -> CaseDocument:
        """Build an unattached document stamped with a fresh id and createdAt."""
        return build_model(
            CaseDocument,
            label="document",
            id=self.identity.new_id(),
            type=type,
            raw_text=raw_text,
            cleaned_text=cleaned_text,
            translated_text=translated_text,
            original_image_urls=original_image_urls or [],
            processed_image_urls=processed_image_urls or [],
            detected_language=detected_language,
            is_handwritten=is_handwritten,
            employee_id=employee_id,
            submitted_by=submitted_by,
            submitted_by_id=submitted_by_id,
            device_id=device_id,
            page_count=page_count,
            created_at=self.identity.now(),
        )

    def _get_document(self, case: ConflictCase, document_id: UUID) -> CaseDocument:
        document = case.find_document(document_id)
        if document is None:
            raise rejection(case, DocumentNotFoundError(f"Document {document_id} is not on the case"))
        return document

    def _ensure_not_compared(self, case: ConflictCase, document: CaseDocument, operation: str) -> None:
        """Complaint statements are frozen once a comparison of them is accepted."""
        if document.type in SINGLETON_DOCUMENT_TYPES and case.comparison_result is not None:
            raise rejection(
                case,
                CaseLockedError(
                    f"Cannot {operation}: the accepted comparison was made from this "
                    f"{document.type} statement"
                ),
            )

    # Attachment

    def attach(self, case: ConflictCase, actor: Actor, document: CaseDocument) -> CaseDocument:
        """Attach a scanned document and stamp its version hash."""
        ensure_mutable(case, "attach a document")
        if document.type in SINGLETON_DOCUMENT_TYPES and any(
            existing.type == document.type for existing in case.documents
        ):
            raise rejection(
                case,
                DuplicateDocumentTypeError(f"The case already has a {document.type} document"),
            )
        if case.find_document(document.id) is not None:
            raise CaseValidationError(f"Document {document.id} is already attached")
        if document.employee_id is not None and not any(
            emp.id == document.employee_id for emp in case.involved_employees
        ):
            raise CaseValidationError(
                f"Document references employee {document.employee_id} who is not on the case"
            )
        if (
            document.employee_review_timestamp
            or document.employee_signature_timestamp
            or document.supervisor_certification_timestamp
        ):
            raise CaseValidationError(
                "Review, signature and certification must be recorded after attachment"
            )
        if document.version_hash_history:
            raise CaseValidationError("New documents cannot carry a hash history")

        computed = document_version_hash(document)
        if document.version_hash is not None and document.version_hash != computed:
            raise CaseValidationError(
                "Document content does not match its supplied version hash",
                [f"supplied={document.version_hash}", f"computed={computed}"],
            )

        attached = document.model_copy(deep=True)
        attached.version_hash = computed
        if attached.app_version is None:
            attached.app_version = self.app_version
        case.documents.append(attached)
        self.audit.append(
            case,
            audit.DOCUMENT_ATTACHED,
            f"Attached {attached.type} document {attached.id} (hash {computed})",
            actor,
        )
        logger.info("Attached %s to case %s", attached.type, case.case_number)
        return attached

    def remove_document(self, case: ConflictCase, actor: Actor, document_id: UUID) -> None:
        ensure_status(case, EDITABLE_STATUSES, "remove a document")
        document = self._get_document(case, document_id)
        self._ensure_not_compared(case, document, "remove the document")
        case.documents = [doc for doc in case.documents if doc.id != document_id]
        self.audit.append(
            case,
            audit.DOCUMENT_REMOVED,
            f"Removed {document.type} document {document.id} (hash {document.version_hash})",
            actor,
        )

    # Employee review / signature / supervisor certification

    def record_employee_review(
        self,
        case: ConflictCase,
        actor: Actor,
        document_id: UUID,
        timestamp: datetime,
    ) -> None:
        ensure_aware(timestamp, "Review timestamp")
        ensure_mutable(case, "record an employee review")
        document = self._get_document(case, document_id)
        if document.employee_review_timestamp is not None:
            raise rejection(case, AlreadyReviewedError(f"Document {document_id} was already reviewed"))
        if timestamp < document.created_at:
            raise rejection(
                case, TimestampOrderError("Employee review cannot precede the document's creation")
            )

        document.employee_review_timestamp = timestamp
        self.audit.append(
            case,
            audit.EMPLOYEE_REVIEW_RECORDED,
            f"Employee reviewed {document.type} document {document.id} at {timestamp.isoformat()}",
            actor,
        )

    def record_employee_signature(
        self,
        case: ConflictCase,
        actor: Actor,
        document_id: UUID,
        signature_image: str,
        timestamp: datetime,
    ) -> None:
        ensure_aware(timestamp, "Signature timestamp")
        ensure_mutable(case, "record an employee signature")
        document = self._get_document(case, document_id)
        review = document.employee_review_timestamp
        if review is None or timestamp < review:
            raise rejection(
                case,
                ReviewRequiredFirstError("The employee must review the document before signing it"),
            )
        if document.employee_signature_timestamp is not None:
            raise rejection(case, AlreadySignedError(f"Document {document_id} was already signed"))
        if not signature_image:
            raise CaseValidationError("A signature image is required")

        document.signature_image = signature_image
        document.employee_signature_timestamp = timestamp
        self.audit.append(
            case,
            audit.EMPLOYEE_SIGNATURE_RECORDED,
            f"Employee signed {document.type} document {document.id} at {timestamp.isoformat()}",
            actor,
        )

    def certify_supervisor(
        self,
        case: ConflictCase,
        actor: Actor,
        document_id: UUID,
        supervisor_id: str,
        supervisor_name: str,
        timestamp: datetime,
    ) -> None:
        ensure_aware(timestamp, "Certification timestamp")
        ensure_mutable(case, "certify a document")
        document = self._get_document(case, document_id)
        signature = document.employee_signature_timestamp
        if signature is None or timestamp < signature:
            raise rejection(
                case,
                SignatureRequiredFirstError("The employee must sign the document before certification"),
            )
        if document.supervisor_certification_timestamp is not None:
            raise rejection(
                case, AlreadyCertifiedError(f"Document {document_id} was already certified")
            )

        document.supervisor_id = supervisor_id
        document.supervisor_name = supervisor_name
        document.supervisor_certification_timestamp = timestamp
        self.audit.append(
            case,
            audit.SUPERVISOR_CERTIFIED,
            f"{supervisor_name} certified {document.type} document {document.id} "
            f"at {timestamp.isoformat()}",
            actor,
        )
        logger.info("Document %s certified on case %s", document.id, case.case_number)

    # Content edits

    def _rehash(self, document: CaseDocument, new_hash: str) -> Optional[str]:
        previous = document.version_hash
        if previous is not None and previous != new_hash:
            document.version_hash_history.append(previous)
        document.version_hash = new_hash
        return previous

    def edit_text(
        self,
        case: ConflictCase,
        actor: Actor,
        document_id: UUID,
        new_cleaned_text: str,
    ) -> CaseDocument:
        """Replace the cleaned text; only allowed before the case goes to review."""
        ensure_status(case, EDITABLE_STATUSES, "edit document text")
        document = self._get_document(case, document_id)
        self._ensure_not_compared(case, document, "edit the document text")
        if new_cleaned_text == document.cleaned_text:
            return document

        new_hash = document_version_hash(document, cleaned_text=new_cleaned_text)
        document.cleaned_text = new_cleaned_text
        previous = self._rehash(document, new_hash)
        self.audit.append(
            case,
            audit.DOCUMENT_EDITED,
            f"Edited {document.type} document {document.id}: hash {previous} -> {new_hash}",
            actor,
        )
        return document

    def record_translation(
        self,
        case: ConflictCase,
        actor: Actor,
        document_id: UUID,
        translated_text: str,
        detected_language: Optional[str] = None,
    ) -> CaseDocument:
        """Store the translation service's output for a document."""
        ensure_status(case, EDITABLE_STATUSES, "record a translation")
        document = self._get_document(case, document_id)
        if translated_text == document.translated_text and (
            detected_language is None or detected_language == document.detected_language
        ):
            return document

        new_hash = document_version_hash(
            document, translated_text=translated_text, keep_translation=False
        )
        document.translated_text = translated_text
        if detected_language is not None:
            document.detected_language = detected_language
        previous = self._rehash(document, new_hash)
        self.audit.append(
            case,
            audit.DOCUMENT_TRANSLATED,
            f"Translated {document.type} document {document.id}"
            f" ({document.detected_language or 'unknown'}): hash {previous} -> {new_hash}",
            actor,
        )
        return document
