"""
Clinician view route.
The QR code on the patient's phone points here; the path segment is the
bearer token. No login: possession of an active token is the authorization.
"""

from flask import Blueprint, jsonify

from rxrelay.services.intake_service import record_view
from rxrelay.services.token_service import resolve_token

view_bp = Blueprint("view", __name__)


@view_bp.route("/<token>", methods=["GET"])
def view_summary(token):
    """
    Return the intake summary for an active token.

    410 – token unknown, expired or invalidated
    404 – the intake behind the token no longer exists
    """
    access_token = resolve_token(token)
    if access_token is None:
        return jsonify({"error": "Token expired or invalid."}), 410

    summary = record_view(access_token)
    if summary is None:
        return jsonify({"error": "Intake not found."}), 404

    return jsonify(summary), 200
