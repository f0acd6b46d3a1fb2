"""
Medication history service.
Long-term view over every prescription a patient has photographed:
per-symptom visit history, per-medication statistics and adherence tracking.
"""

import logging
import math
from collections import OrderedDict
from datetime import datetime
from typing import Optional

from rxrelay.constants import (
    ADHERENCE_MISSED,
    ADHERENCE_SKIPPED,
    ADHERENCE_STATUSES,
    ADHERENCE_TAKEN,
    DEFAULT_CONFIDENCE,
)
from rxrelay.database import db
from rxrelay.models.models import AdherenceLog, Prescription, PrescriptionMedication

logger = logging.getLogger("rxrelay.history")

RECENT_ADHERENCE_LOGS = 10


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _with_medications(prescriptions) -> list:
    return [
        {
            "prescription": p.to_dict(),
            "medications": [m.to_dict() for m in p.medications],
        }
        for p in prescriptions
    ]


def get_prescriptions_with_medications(patient) -> list:
    prescriptions = (
        Prescription.query
        .filter_by(patient_id=patient.id)
        .order_by(Prescription.prescription_date.desc(), Prescription.created_at.desc())
        .all()
    )
    return _with_medications(prescriptions)


def _prescriptions_for_symptom(patient, chief_complaint: str) -> list:
    return (
        Prescription.query
        .filter_by(patient_id=patient.id, chief_complaint=chief_complaint)
        .order_by(Prescription.created_at.desc())
        .all()
    )


def _medication_stats(prescriptions) -> list:
    stats = OrderedDict()
    for prescription in prescriptions:
        prescribed_on = prescription.effective_date()
        for med in prescription.medications:
            entry = stats.setdefault(med.medication_name, {
                "total_count": 0,
                "confidence_sum": 0,
                "last_date": None,
                "doses": [],
                "frequencies": [],
            })
            entry["total_count"] += 1
            entry["confidence_sum"] += med.confidence if med.confidence is not None else DEFAULT_CONFIDENCE
            if entry["last_date"] is None or prescribed_on > entry["last_date"]:
                entry["last_date"] = prescribed_on
            if med.dose and med.dose not in entry["doses"]:
                entry["doses"].append(med.dose)
            if med.frequency and med.frequency not in entry["frequencies"]:
                entry["frequencies"].append(med.frequency)

    result = [
        {
            "medication_name": name,
            "total_count": data["total_count"],
            "avg_confidence": _round_half_up(data["confidence_sum"] / data["total_count"]),
            "last_prescribed_date": data["last_date"],
            "doses": data["doses"],
            "frequencies": data["frequencies"],
        }
        for name, data in stats.items()
    ]
    result.sort(key=lambda s: s["total_count"], reverse=True)
    return result


def get_medication_stats_by_symptom(patient, chief_complaint: str) -> list:
    return _medication_stats(_prescriptions_for_symptom(patient, chief_complaint))


def get_symptom_history(patient, chief_complaint: str) -> Optional[dict]:
    """Visits and medications recorded for one chief complaint, or None if there are none."""
    prescriptions = _prescriptions_for_symptom(patient, chief_complaint)
    if not prescriptions:
        return None

    dates = sorted(p.effective_date() for p in prescriptions)
    return {
        "chief_complaint": chief_complaint,
        "total_visits": len(prescriptions),
        "first_visit_date": dates[0],
        "last_visit_date": dates[-1],
        "prescriptions": _with_medications(prescriptions),
        "medication_stats": _medication_stats(prescriptions),
    }


# ── Adherence ──────────────────────────────────────────────────────────────

def find_patient_medication(patient, medication_id: str) -> Optional[PrescriptionMedication]:
    return (
        PrescriptionMedication.query
        .join(Prescription)
        .filter(PrescriptionMedication.id == medication_id, Prescription.patient_id == patient.id)
        .first()
    )


def record_adherence(patient, medication: PrescriptionMedication, status: str,
                     scheduled_time: datetime, note: Optional[str] = None) -> AdherenceLog:
    if status not in ADHERENCE_STATUSES:
        raise ValueError(f"status must be one of: {', '.join(ADHERENCE_STATUSES)}")
    log = AdherenceLog(
        patient_id=patient.id,
        medication_id=medication.id,
        scheduled_time=scheduled_time,
        status=status,
        note=note,
    )
    db.session.add(log)
    db.session.commit()
    return log


def get_adherence_summary(patient_id: str) -> dict:
    logs = (
        AdherenceLog.query
        .filter_by(patient_id=patient_id)
        .order_by(AdherenceLog.scheduled_time.desc())
        .all()
    )
    taken = sum(1 for log in logs if log.status == ADHERENCE_TAKEN)
    missed = sum(1 for log in logs if log.status == ADHERENCE_MISSED)
    skipped = sum(1 for log in logs if log.status == ADHERENCE_SKIPPED)
    total = len(logs)
    return {
        "total_scheduled": total,
        "taken_count": taken,
        "missed_count": missed,
        "skipped_count": skipped,
        "adherence_rate": _round_half_up(taken / total * 100) if total else 100,
        "recent_logs": [log.to_dict() for log in logs[:RECENT_ADHERENCE_LOGS]],
    }
