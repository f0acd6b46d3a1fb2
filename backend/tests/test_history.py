"""
Medication history tests – per-symptom statistics and adherence arithmetic.
"""

from datetime import datetime, timedelta

import pytest

from rxrelay.database import db
from rxrelay.models.models import Prescription, PrescriptionMedication
from rxrelay.services.history_service import (
    find_patient_medication,
    get_adherence_summary,
    get_medication_stats_by_symptom,
    get_prescriptions_with_medications,
    get_symptom_history,
    record_adherence,
)
from rxrelay.services.patient_service import get_or_create_patient


def _prescription(patient, chief_complaint, prescription_date, *medications):
    prescription = Prescription(
        patient_id=patient.id,
        hospital_name="Jungang Internal Medicine Clinic",
        chief_complaint=chief_complaint,
        prescription_date=prescription_date,
    )
    for name, confidence, dose, frequency in medications:
        prescription.medications.append(PrescriptionMedication(
            medication_name=name, confidence=confidence, dose=dose, frequency=frequency,
        ))
    db.session.add(prescription)
    db.session.commit()
    return prescription


@pytest.fixture
def headache_history(patient):
    _prescription(
        patient, "headache", "2026-09-01",
        ("Tylenol", 90, "500mg", "3 times a day"),
        ("Ibuprofen", 70, "200mg", None),
    )
    _prescription(
        patient, "headache", "2026-10-01",
        ("Tylenol", 75, "650mg", "3 times a day"),
    )
    _prescription(patient, "fever", "2026-08-15", ("Aspirin", 80, "100mg", None))
    return patient


# ════════════════════════════════════════════
# SYMPTOM HISTORY
# ════════════════════════════════════════════

class TestMedicationStats:
    def test_counts_and_order(self, headache_history):
        stats = get_medication_stats_by_symptom(headache_history, "headache")
        assert [s["medication_name"] for s in stats] == ["Tylenol", "Ibuprofen"]
        assert stats[0]["total_count"] == 2
        assert stats[1]["total_count"] == 1

    def test_average_confidence_rounds_half_up(self, headache_history):
        tylenol = get_medication_stats_by_symptom(headache_history, "headache")[0]
        # (90 + 75) / 2 = 82.5
        assert tylenol["avg_confidence"] == 83

    def test_distinct_doses_and_frequencies(self, headache_history):
        stats = {s["medication_name"]: s for s in get_medication_stats_by_symptom(headache_history, "headache")}
        assert set(stats["Tylenol"]["doses"]) == {"500mg", "650mg"}
        assert stats["Tylenol"]["frequencies"] == ["3 times a day"]
        assert stats["Ibuprofen"]["frequencies"] == []

    def test_last_prescribed_date(self, headache_history):
        stats = {s["medication_name"]: s for s in get_medication_stats_by_symptom(headache_history, "headache")}
        assert stats["Tylenol"]["last_prescribed_date"] == "2026-10-01"
        assert stats["Ibuprofen"]["last_prescribed_date"] == "2026-09-01"

    def test_other_complaints_excluded(self, headache_history):
        names = {s["medication_name"] for s in get_medication_stats_by_symptom(headache_history, "headache")}
        assert "Aspirin" not in names


class TestSymptomHistory:
    def test_visit_dates(self, headache_history):
        history = get_symptom_history(headache_history, "headache")
        assert history["chief_complaint"] == "headache"
        assert history["total_visits"] == 2
        assert history["first_visit_date"] == "2026-09-01"
        assert history["last_visit_date"] == "2026-10-01"
        assert len(history["prescriptions"]) == 2

    def test_undated_prescription_uses_upload_day(self, patient):
        prescription = _prescription(patient, "cough", None, ("Codeine", 85, None, None))
        history = get_symptom_history(patient, "cough")
        assert history["first_visit_date"] == prescription.created_at.date().isoformat()

    def test_no_history(self, patient):
        assert get_symptom_history(patient, "dizziness") is None

    def test_all_prescriptions(self, headache_history):
        items = get_prescriptions_with_medications(headache_history)
        assert len(items) == 3
        assert items[0]["prescription"]["prescription_date"] == "2026-10-01"
        assert {m["medication_name"] for i in items for m in i["medications"]} == {"Tylenol", "Ibuprofen", "Aspirin"}


# ════════════════════════════════════════════
# ADHERENCE
# ════════════════════════════════════════════

class TestAdherence:
    @pytest.fixture
    def medication(self, patient):
        return _prescription(patient, "pain", "2026-10-10", ("Naproxen", 88, "250mg", None)).medications[0]

    def test_empty_summary(self, patient):
        summary = get_adherence_summary(patient.id)
        assert summary == {
            "total_scheduled": 0,
            "taken_count": 0,
            "missed_count": 0,
            "skipped_count": 0,
            "adherence_rate": 100,
            "recent_logs": [],
        }

    def test_rate(self, patient, medication):
        start = datetime(2026, 10, 10, 8, 0)
        for i, status in enumerate(["taken", "taken", "missed", "skipped"]):
            record_adherence(patient, medication, status, start + timedelta(hours=8 * i))
        summary = get_adherence_summary(patient.id)
        assert summary["total_scheduled"] == 4
        assert summary["taken_count"] == 2
        assert summary["missed_count"] == 1
        assert summary["skipped_count"] == 1
        assert summary["adherence_rate"] == 50

    def test_rate_rounds_half_up(self, patient, medication):
        start = datetime(2026, 10, 10, 8, 0)
        statuses = ["taken"] * 7 + ["missed"]
        for i, status in enumerate(statuses):
            record_adherence(patient, medication, status, start + timedelta(hours=i))
        # 7 / 8 = 87.5%
        assert get_adherence_summary(patient.id)["adherence_rate"] == 88

    def test_recent_logs_capped_newest_first(self, patient, medication):
        start = datetime(2026, 10, 1, 8, 0)
        for i in range(12):
            record_adherence(patient, medication, "taken", start + timedelta(days=i))
        logs = get_adherence_summary(patient.id)["recent_logs"]
        assert len(logs) == 10
        assert logs[0]["scheduled_time"] == "2026-10-12T08:00:00"

    def test_invalid_status(self, patient, medication):
        with pytest.raises(ValueError):
            record_adherence(patient, medication, "forgot", datetime(2026, 10, 10, 8, 0))

    def test_medication_ownership(self, patient, medication):
        assert find_patient_medication(patient, medication.id).id == medication.id
        stranger = get_or_create_patient("stranger-device-0001")
        assert find_patient_medication(stranger, medication.id) is None
