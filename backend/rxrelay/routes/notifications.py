"""
Notification routes – inbox and preferences of the identified patient.
"""

from flask import Blueprint, jsonify, request

from rxrelay.middleware.device_identity import get_current_patient
from rxrelay.services import notification_service

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/", methods=["GET"])
def list_notifications():
    patient = get_current_patient()
    notifications = notification_service.list_notifications(patient)
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": notification_service.unread_count(patient),
    }), 200


@notifications_bp.route("/<notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    if not notification_service.mark_read(get_current_patient(), notification_id):
        return jsonify({"error": "Notification not found."}), 404
    return jsonify({"success": True}), 200


@notifications_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    updated = notification_service.mark_all_read(get_current_patient())
    return jsonify({"updated": updated}), 200


@notifications_bp.route("/settings", methods=["GET"])
def get_settings():
    return jsonify({"settings": notification_service.get_settings(get_current_patient())}), 200


@notifications_bp.route("/settings", methods=["PUT"])
def update_settings():
    """Body: any of intake_viewed_enabled, medication_reminder_enabled, follow_up_enabled (booleans)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object."}), 400
    try:
        settings = notification_service.update_settings(get_current_patient(), data)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"settings": settings}), 200
