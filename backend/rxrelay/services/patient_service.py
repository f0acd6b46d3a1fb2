"""
Patients are anonymous: a device identifier generated by the client app
stands in for an account.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from rxrelay.database import db
from rxrelay.models.models import Patient

logger = logging.getLogger("rxrelay.patients")


def get_patient_by_device_id(device_id: str) -> Optional[Patient]:
    return Patient.query.filter_by(device_id=device_id).first()


def get_or_create_patient(device_id: str) -> Patient:
    patient = get_patient_by_device_id(device_id)
    if patient is not None:
        return patient

    patient = Patient(device_id=device_id)
    db.session.add(patient)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request registered the same device first.
        db.session.rollback()
        return get_patient_by_device_id(device_id)
    logger.info("Registered new patient %s", patient.id)
    return patient
