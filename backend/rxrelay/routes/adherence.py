"""
Adherence routes – the patient records whether each scheduled dose was taken.
"""

from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from rxrelay.constants import ADHERENCE_STATUSES
from rxrelay.middleware.device_identity import get_current_patient
from rxrelay.services.history_service import (
    find_patient_medication,
    get_adherence_summary,
    record_adherence,
)

adherence_bp = Blueprint("adherence", __name__)


def _parse_timestamp(value):
    """ISO-8601 → naive UTC datetime. Raises ValueError."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@adherence_bp.route("/", methods=["POST"])
def log_dose():
    """
    Body: {
        "medication_id": "prescription medication id",
        "status": "taken" | "missed" | "skipped",
        "scheduled_time": "ISO-8601 timestamp",
        "note": "optional"
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object."}), 400
    required = ["medication_id", "status", "scheduled_time"]
    missing = [f for f in required if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    if data["status"] not in ADHERENCE_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(ADHERENCE_STATUSES)}"}), 400

    try:
        scheduled_time = _parse_timestamp(str(data["scheduled_time"]))
    except ValueError:
        return jsonify({"error": "scheduled_time must be an ISO-8601 timestamp."}), 400

    patient = get_current_patient()
    medication = find_patient_medication(patient, str(data["medication_id"]))
    if medication is None:
        return jsonify({"error": "Medication not found."}), 404

    log = record_adherence(patient, medication, data["status"], scheduled_time, data.get("note"))
    return jsonify({"adherence_log": log.to_dict()}), 201


@adherence_bp.route("/summary", methods=["GET"])
def adherence_summary():
    return jsonify(get_adherence_summary(get_current_patient().id)), 200
