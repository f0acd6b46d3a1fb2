"""
Medication history routes – prescriptions the patient has photographed over
time, grouped by chief complaint.
"""

from flask import Blueprint, jsonify

from rxrelay.middleware.device_identity import get_current_patient
from rxrelay.services.history_service import (
    get_prescriptions_with_medications,
    get_symptom_history,
)

prescriptions_bp = Blueprint("prescriptions", __name__)


@prescriptions_bp.route("/", methods=["GET"])
def list_prescriptions():
    """Every stored prescription with its medications, newest first."""
    return jsonify({"prescriptions": get_prescriptions_with_medications(get_current_patient())}), 200


@prescriptions_bp.route("/symptom-history/<chief_complaint>", methods=["GET"])
def symptom_history(chief_complaint):
    history = get_symptom_history(get_current_patient(), chief_complaint)
    if history is None:
        return jsonify({"error": "No history for this complaint."}), 404
    return jsonify(history), 200
