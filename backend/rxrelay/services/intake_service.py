"""
Intake service – the patient's pre-visit submission.

Create flow:
  form validation → intake row → AI extraction per document →
  medication rows (+ prescription history) → low-confidence flags →
  AI conflict flags → first access token

Read flow for clinicians goes through record_view(), which writes the
access log and notifies the patient.
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from rxrelay.config import Config
from rxrelay.constants import (
    ACCESS_ACTION_VIEW,
    FLAG_LOW_CONFIDENCE,
    SOURCE_HISTORY,
    SOURCE_PRESCRIPTION,
)
from rxrelay.database import db
from rxrelay.models.models import (
    AccessLog,
    Intake,
    Medication,
    Prescription,
    PrescriptionMedication,
    VerificationFlag,
)
from rxrelay.models.schemas import IntakeForm
from rxrelay.services.extraction_service import detect_conflicts, extract_medications_from_image
from rxrelay.services.history_service import get_adherence_summary
from rxrelay.services.notification_service import notify_intake_viewed
from rxrelay.services.token_service import consume_token, invalidate_tokens, issue_token

logger = logging.getLogger("rxrelay.intake")

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


class DocumentRejected(ValueError):
    """An uploaded document (or its metadata) cannot be accepted."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class UploadedDocument:
    data: bytes
    mime_type: str
    filename: str = ""


# ═══════════════════════════════════════════
# INPUT PREPARATION
# ═══════════════════════════════════════════

def parse_intake_form(fields: dict) -> IntakeForm:
    """Validate the submitted form fields. Raises pydantic.ValidationError."""
    return IntakeForm.model_validate(fields)


def prepare_documents(files: Iterable) -> List[UploadedDocument]:
    """Read uploaded files into memory, enforcing count, type and size limits."""
    files = [f for f in files if f and f.filename]
    if len(files) > Config.MAX_DOCUMENTS_PER_INTAKE:
        raise DocumentRejected(
            f"At most {Config.MAX_DOCUMENTS_PER_INTAKE} documents can be uploaded per intake."
        )

    documents = []
    for f in files:
        mime_type = (f.mimetype or "").lower()
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise DocumentRejected(
                f"Unsupported document type '{mime_type or 'unknown'}'. "
                f"Accepted: {', '.join(ALLOWED_IMAGE_TYPES)}.",
                status_code=415,
            )
        data = f.read(Config.MAX_UPLOAD_BYTES + 1)
        if not data:
            raise DocumentRejected(f"Document '{f.filename}' is empty.")
        if len(data) > Config.MAX_UPLOAD_BYTES:
            raise DocumentRejected(
                f"Document '{f.filename}' exceeds the {Config.MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit.",
                status_code=413,
            )
        documents.append(UploadedDocument(data=data, mime_type=mime_type, filename=f.filename))
    return documents


def parse_prescription_ids(raw: Optional[str]) -> List[str]:
    """Decode the optional JSON list of previously stored prescription ids."""
    if not raw:
        return []
    try:
        ids = json.loads(raw)
    except json.JSONDecodeError:
        raise DocumentRejected("existing_prescription_ids must be a JSON list of ids.")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise DocumentRejected("existing_prescription_ids must be a JSON list of ids.")
    return ids


# ═══════════════════════════════════════════
# CREATE
# ═══════════════════════════════════════════

def _record_prescription(patient, intake: Intake, result) -> Prescription:
    """Keep the extracted document in the patient's long-term history."""
    first = result.medications[0]
    prescription = Prescription(
        patient_id=patient.id,
        intake_id=intake.id,
        hospital_name=result.hospital_name or intake.hospital_name,
        chief_complaint=intake.chief_complaint,
        prescription_date=first.prescription_date or first.dispensing_date,
        patient_condition=result.patient_condition,
        raw_text=result.raw_text,
    )
    for med in result.medications:
        prescription.medications.append(PrescriptionMedication(
            medication_name=med.medication_name,
            dose=med.dose,
            frequency=med.frequency,
            duration=med.duration,
            confidence=med.confidence,
            ingredients=med.ingredients,
            indication=med.indication,
            doses_per_day=med.doses_per_day,
            total_doses=med.total_doses,
        ))
    db.session.add(prescription)
    return prescription


def _copy_history(patient, intake: Intake, prescription_ids: List[str]) -> List[Medication]:
    """Attach medications from prescriptions the patient picked from their history."""
    if not prescription_ids or patient is None:
        return []
    prescriptions = (
        Prescription.query
        .filter(Prescription.id.in_(prescription_ids), Prescription.patient_id == patient.id)
        .all()
    )
    copied = []
    for prescription in prescriptions:
        for med in prescription.medications:
            medication = Medication(
                intake_id=intake.id,
                medication_name=med.medication_name,
                dose=med.dose,
                frequency=med.frequency,
                duration=med.duration,
                prescription_date=prescription.prescription_date,
                confidence=med.confidence,
                needs_verification=(med.confidence or 0) < Config.LOW_CONFIDENCE_THRESHOLD,
                raw_ocr_text=prescription.raw_text,
                source_type=SOURCE_HISTORY,
                ingredients=med.ingredients,
                indication=med.indication,
                doses_per_day=med.doses_per_day,
                total_doses=med.total_doses,
            )
            db.session.add(medication)
            copied.append(medication)
    return copied


def _extract_documents(patient, intake: Intake, documents: List[UploadedDocument]) -> List[Medication]:
    medications = []
    for doc in documents:
        result = extract_medications_from_image(doc.data, doc.mime_type)
        if result.errors:
            logger.warning(
                "Extraction for '%s' on intake %s reported %d error(s)",
                doc.filename, intake.id, len(result.errors),
            )
        if not result.medications:
            continue

        if patient is not None:
            _record_prescription(patient, intake, result)

        for med in result.medications:
            medication = Medication(
                intake_id=intake.id,
                medication_name=med.medication_name,
                dose=med.dose,
                frequency=med.frequency,
                duration=med.duration,
                prescription_date=med.prescription_date,
                dispensing_date=med.dispensing_date,
                confidence=med.confidence,
                needs_verification=med.confidence < Config.LOW_CONFIDENCE_THRESHOLD,
                raw_ocr_text=med.raw_ocr_text,
                source_type=SOURCE_PRESCRIPTION,
                ingredients=med.ingredients,
                indication=med.indication,
                doses_per_day=med.doses_per_day,
                total_doses=med.total_doses,
            )
            db.session.add(medication)
            medications.append(medication)
    return medications


def _flag_low_confidence(intake: Intake, medications: List[Medication]) -> None:
    for med in medications:
        if not med.needs_verification:
            continue
        db.session.add(VerificationFlag(
            intake_id=intake.id,
            flag_type=FLAG_LOW_CONFIDENCE,
            description=(
                f'"{med.medication_name}" was read with low confidence ({med.confidence}%). '
                "Please confirm it with the patient."
            ),
            related_medication_ids=[med.id],
        ))


def _flag_conflicts(intake: Intake, medications: List[Medication]) -> None:
    conflicts = detect_conflicts(medications, intake.allergies_detail, intake.adverse_events_detail)
    for conflict in conflicts:
        db.session.add(VerificationFlag(
            intake_id=intake.id,
            flag_type=conflict["type"],
            description=conflict["description"],
            related_medication_ids=conflict["related_medication_ids"],
        ))


def create_intake(form: IntakeForm, documents: List[UploadedDocument], patient=None,
                  existing_prescription_ids: Iterable[str] = ()):
    """Run the whole submission pipeline. Returns (intake, first access token)."""
    intake = Intake(patient_id=patient.id if patient else None, **form.model_dump())
    db.session.add(intake)
    db.session.flush()

    medications = _extract_documents(patient, intake, documents)
    medications += _copy_history(patient, intake, list(existing_prescription_ids))
    # Medication ids are needed by the flags and the conflict prompt.
    db.session.flush()

    _flag_low_confidence(intake, medications)
    if medications:
        _flag_conflicts(intake, medications)

    db.session.commit()
    logger.info(
        "Created intake %s with %d document(s) and %d medication(s)",
        intake.id, len(documents), len(medications),
    )

    token = issue_token(intake)
    return intake, token


# ═══════════════════════════════════════════
# READ / DELETE
# ═══════════════════════════════════════════

def list_intakes(patient) -> list:
    return (
        Intake.query
        .filter_by(patient_id=patient.id, is_deleted=False)
        .order_by(Intake.created_at.desc())
        .all()
    )


def get_intake(intake_id: str, patient=None) -> Optional[Intake]:
    """Non-deleted intake by id; when a patient is given it must be theirs."""
    query = Intake.query.filter_by(id=intake_id, is_deleted=False)
    if patient is not None:
        query = query.filter_by(patient_id=patient.id)
    return query.first()


def delete_intake(intake: Intake) -> None:
    """Soft delete; every share token of the intake stops working immediately."""
    intake.is_deleted = True
    db.session.commit()
    invalidate_tokens(intake.id)
    logger.info("Soft-deleted intake %s", intake.id)


def get_access_logs(intake_id: str) -> list:
    return (
        AccessLog.query
        .filter_by(intake_id=intake_id)
        .order_by(AccessLog.accessed_at.desc())
        .all()
    )


def get_intake_summary(intake_id: str) -> Optional[dict]:
    intake = get_intake(intake_id)
    if intake is None:
        return None

    summary = {
        "intake": intake.to_dict(),
        "medications": [m.to_dict() for m in intake.medications],
        "verification_flags": [f.to_dict() for f in intake.verification_flags],
        "access_logs": [log.to_dict() for log in get_access_logs(intake_id)],
    }
    if intake.patient_id:
        summary["adherence_summary"] = get_adherence_summary(intake.patient_id)
    return summary


def record_view(token) -> Optional[dict]:
    """
    Clinician opened the share link.
    Returns the intake summary, or None when the intake no longer exists.
    """
    summary = get_intake_summary(token.intake_id)
    if summary is None:
        return None

    db.session.add(AccessLog(intake_id=token.intake_id, token_id=token.id, action=ACCESS_ACTION_VIEW))
    db.session.commit()
    logger.info("Intake %s viewed via token %s", token.intake_id, token.id)

    notify_intake_viewed(db.session.get(Intake, token.intake_id))
    consume_token(token)
    return summary
