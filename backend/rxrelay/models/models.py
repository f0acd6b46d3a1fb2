"""
SQLAlchemy ORM models – intake, medication record and share-token tables.
All primary keys are string UUIDs; all timestamps are naive UTC.
"""

import uuid
from datetime import datetime, timezone

from rxrelay.database import db


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC now, the representation every timestamp column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class Hospital(db.Model):
    __tablename__ = "hospitals"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(100), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "type": self.type,
        }


class Patient(db.Model):
    """A patient is known only by the device identifier of their phone."""
    __tablename__ = "patients"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    device_id = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": _iso(self.created_at),
        }


class Intake(db.Model):
    __tablename__ = "intakes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"), index=True)
    hospital_id = db.Column(db.String(36), nullable=False)
    hospital_name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    chief_complaint = db.Column(db.String(50), nullable=False)
    chief_complaint_detail = db.Column(db.Text)
    onset_date = db.Column(db.String(50), nullable=False)
    course_status = db.Column(db.String(20), nullable=False)   # improving, worsening, stable
    course_detail = db.Column(db.Text)
    adherence = db.Column(db.String(20), nullable=False)       # yes, partial, no
    adherence_reason = db.Column(db.Text)
    has_adverse_events = db.Column(db.Boolean, default=False)
    adverse_events_detail = db.Column(db.Text)
    has_allergies = db.Column(db.Boolean, default=False)
    allergies_detail = db.Column(db.Text)
    doctor_note = db.Column(db.Text)

    is_deleted = db.Column(db.Boolean, default=False, nullable=False)

    # Relationships
    medications = db.relationship("Medication", backref="intake", lazy="select", cascade="all, delete-orphan")
    verification_flags = db.relationship("VerificationFlag", backref="intake", lazy="select", cascade="all, delete-orphan")
    access_tokens = db.relationship("AccessToken", backref="intake", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "hospital_id": self.hospital_id,
            "hospital_name": self.hospital_name,
            "created_at": _iso(self.created_at),
            "chief_complaint": self.chief_complaint,
            "chief_complaint_detail": self.chief_complaint_detail,
            "onset_date": self.onset_date,
            "course_status": self.course_status,
            "course_detail": self.course_detail,
            "adherence": self.adherence,
            "adherence_reason": self.adherence_reason,
            "has_adverse_events": bool(self.has_adverse_events),
            "adverse_events_detail": self.adverse_events_detail,
            "has_allergies": bool(self.has_allergies),
            "allergies_detail": self.allergies_detail,
            "doctor_note": self.doctor_note,
        }


class Medication(db.Model):
    """One medication line extracted for an intake."""
    __tablename__ = "medications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False, index=True)

    medication_name = db.Column(db.Text, nullable=False)
    dose = db.Column(db.Text)
    frequency = db.Column(db.Text)
    duration = db.Column(db.Text)
    prescription_date = db.Column(db.Text)
    dispensing_date = db.Column(db.Text)

    confidence = db.Column(db.Integer, default=80)              # 0-100
    needs_verification = db.Column(db.Boolean, default=False)
    raw_ocr_text = db.Column(db.Text)
    source_type = db.Column(db.String(30), nullable=False)      # prescription, history

    ingredients = db.Column(db.Text)
    indication = db.Column(db.Text)
    doses_per_day = db.Column(db.Integer)
    total_doses = db.Column(db.Integer)

    def to_dict(self):
        return {
            "id": self.id,
            "intake_id": self.intake_id,
            "medication_name": self.medication_name,
            "dose": self.dose,
            "frequency": self.frequency,
            "duration": self.duration,
            "prescription_date": self.prescription_date,
            "dispensing_date": self.dispensing_date,
            "confidence": self.confidence,
            "needs_verification": bool(self.needs_verification),
            "raw_ocr_text": self.raw_ocr_text,
            "source_type": self.source_type,
            "ingredients": self.ingredients,
            "indication": self.indication,
            "doses_per_day": self.doses_per_day,
            "total_doses": self.total_doses,
        }


class VerificationFlag(db.Model):
    __tablename__ = "verification_flags"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False, index=True)
    flag_type = db.Column(db.String(30), nullable=False)  # duplicate, date_overlap, allergy_conflict, low_confidence
    description = db.Column(db.Text, nullable=False)
    related_medication_ids = db.Column(db.JSON)

    def to_dict(self):
        return {
            "id": self.id,
            "intake_id": self.intake_id,
            "flag_type": self.flag_type,
            "description": self.description,
            "related_medication_ids": self.related_medication_ids or [],
        }


class AccessToken(db.Model):
    """Short-lived bearer token behind the clinician QR code."""
    __tablename__ = "access_tokens"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False, index=True)
    token = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    is_invalidated = db.Column(db.Boolean, default=False, nullable=False)

    def is_active(self, now=None) -> bool:
        now = now or utcnow()
        return not self.is_invalidated and now < self.expires_at

    def to_dict(self):
        return {
            "id": self.id,
            "intake_id": self.intake_id,
            "token": self.token,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "is_invalidated": bool(self.is_invalidated),
        }


class AccessLog(db.Model):
    __tablename__ = "access_logs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id", ondelete="CASCADE"), nullable=False, index=True)
    token_id = db.Column(db.String(36), db.ForeignKey("access_tokens.id"), nullable=False)
    accessed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    action = db.Column(db.String(20), nullable=False)  # view

    def to_dict(self):
        return {
            "id": self.id,
            "intake_id": self.intake_id,
            "token_id": self.token_id,
            "accessed_at": _iso(self.accessed_at),
            "action": self.action,
        }


class Prescription(db.Model):
    """A photographed prescription kept in the patient's long-term history."""
    __tablename__ = "prescriptions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"), nullable=False, index=True)
    intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id"))
    hospital_name = db.Column(db.Text)
    chief_complaint = db.Column(db.String(50), index=True)
    prescription_date = db.Column(db.Text)
    patient_condition = db.Column(db.Text)
    raw_text = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    medications = db.relationship(
        "PrescriptionMedication", backref="prescription", lazy="select", cascade="all, delete-orphan"
    )

    def effective_date(self) -> str:
        """Prescription date, falling back to the upload day."""
        return self.prescription_date or self.created_at.date().isoformat()

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "intake_id": self.intake_id,
            "hospital_name": self.hospital_name,
            "chief_complaint": self.chief_complaint,
            "prescription_date": self.prescription_date,
            "patient_condition": self.patient_condition,
            "created_at": _iso(self.created_at),
        }


class PrescriptionMedication(db.Model):
    __tablename__ = "prescription_medications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    prescription_id = db.Column(
        db.String(36), db.ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    medication_name = db.Column(db.Text, nullable=False)
    dose = db.Column(db.Text)
    frequency = db.Column(db.Text)
    duration = db.Column(db.Text)
    confidence = db.Column(db.Integer, default=80)
    ingredients = db.Column(db.Text)
    indication = db.Column(db.Text)
    doses_per_day = db.Column(db.Integer)
    total_doses = db.Column(db.Integer)

    def to_dict(self):
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "medication_name": self.medication_name,
            "dose": self.dose,
            "frequency": self.frequency,
            "duration": self.duration,
            "confidence": self.confidence,
            "ingredients": self.ingredients,
            "indication": self.indication,
            "doses_per_day": self.doses_per_day,
            "total_doses": self.total_doses,
        }


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"), nullable=False, index=True)
    notification_type = db.Column(db.String(30), nullable=False)  # intake_viewed, medication_reminder, follow_up
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    related_intake_id = db.Column(db.String(36), db.ForeignKey("intakes.id"))
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "related_intake_id": self.related_intake_id,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


class NotificationSettings(db.Model):
    __tablename__ = "notification_settings"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"), nullable=False, unique=True)
    intake_viewed_enabled = db.Column(db.Boolean, default=True, nullable=False)
    medication_reminder_enabled = db.Column(db.Boolean, default=True, nullable=False)
    follow_up_enabled = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "intake_viewed_enabled": bool(self.intake_viewed_enabled),
            "medication_reminder_enabled": bool(self.medication_reminder_enabled),
            "follow_up_enabled": bool(self.follow_up_enabled),
        }


class AdherenceLog(db.Model):
    __tablename__ = "adherence_logs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"), nullable=False, index=True)
    medication_id = db.Column(db.String(36), db.ForeignKey("prescription_medications.id"), nullable=False, index=True)
    scheduled_time = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False)  # taken, missed, skipped
    note = db.Column(db.Text)
    recorded_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "medication_id": self.medication_id,
            "scheduled_time": _iso(self.scheduled_time),
            "status": self.status,
            "note": self.note,
            "recorded_at": _iso(self.recorded_at),
        }


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    patient_id = db.Column(db.String(36), db.ForeignKey("patients.id"))
    endpoint = db.Column(db.String(255))
    method = db.Column(db.String(10))
    status_code = db.Column(db.Integer)
    request_body = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
