"""
Patient notifications and notification preferences.
"""

import logging
from typing import Optional

from rxrelay.constants import NOTIFY_INTAKE_VIEWED
from rxrelay.database import db
from rxrelay.models.models import Notification, NotificationSettings

logger = logging.getLogger("rxrelay.notifications")

SETTING_KEYS = ("intake_viewed_enabled", "medication_reminder_enabled", "follow_up_enabled")


def list_notifications(patient) -> list:
    return (
        Notification.query
        .filter_by(patient_id=patient.id)
        .order_by(Notification.created_at.desc())
        .all()
    )


def unread_count(patient) -> int:
    return Notification.query.filter_by(patient_id=patient.id, is_read=False).count()


def create_notification(patient_id: str, notification_type: str, title: str, message: str,
                        related_intake_id: Optional[str] = None) -> Notification:
    notification = Notification(
        patient_id=patient_id,
        notification_type=notification_type,
        title=title,
        message=message,
        related_intake_id=related_intake_id,
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def mark_read(patient, notification_id: str) -> bool:
    """Mark one of the patient's notifications read. False if it is not theirs."""
    notification = Notification.query.filter_by(id=notification_id, patient_id=patient.id).first()
    if notification is None:
        return False
    notification.is_read = True
    db.session.commit()
    return True


def mark_all_read(patient) -> int:
    updated = (
        Notification.query
        .filter_by(patient_id=patient.id, is_read=False)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def get_settings(patient) -> dict:
    settings = NotificationSettings.query.filter_by(patient_id=patient.id).first()
    if settings is None:
        return {key: True for key in SETTING_KEYS}
    return settings.to_dict()


def update_settings(patient, changes: dict) -> dict:
    """
    Apply boolean preference changes. Unknown keys are ignored;
    non-boolean values raise ValueError.
    """
    updates = {k: changes[k] for k in SETTING_KEYS if k in changes}
    for key, value in updates.items():
        if not isinstance(value, bool):
            raise ValueError(f"'{key}' must be true or false")

    settings = NotificationSettings.query.filter_by(patient_id=patient.id).first()
    if settings is None:
        settings = NotificationSettings(patient_id=patient.id)
        db.session.add(settings)

    for key, value in updates.items():
        setattr(settings, key, value)

    db.session.commit()
    return settings.to_dict()


def notify_intake_viewed(intake) -> Optional[Notification]:
    """Tell the patient that clinical staff opened their shared summary."""
    if not intake.patient_id:
        return None
    settings = NotificationSettings.query.filter_by(patient_id=intake.patient_id).first()
    if settings is not None and not settings.intake_viewed_enabled:
        return None
    logger.info("Notifying patient of view on intake %s", intake.id)
    return create_notification(
        intake.patient_id,
        NOTIFY_INTAKE_VIEWED,
        title="Your intake summary was viewed",
        message=f"Clinical staff at {intake.hospital_name} opened your intake summary.",
        related_intake_id=intake.id,
    )
