"""
Intake routes – the patient's own submissions and their share tokens.
Every route here is scoped to the device-identified patient; an intake that
belongs to someone else is reported as not found.
"""

import logging

from flask import Blueprint, Response, jsonify, request
from pydantic import ValidationError

from rxrelay.middleware.device_identity import get_current_patient
from rxrelay.services.intake_service import (
    DocumentRejected,
    create_intake,
    delete_intake,
    get_access_logs,
    get_intake,
    get_intake_summary,
    list_intakes,
    parse_intake_form,
    parse_prescription_ids,
    prepare_documents,
)
from rxrelay.services.token_service import (
    build_view_url,
    get_or_issue_token,
    regenerate_token,
    render_qr_png,
    serialize_token,
)

logger = logging.getLogger("rxrelay.routes.intakes")

intakes_bp = Blueprint("intakes", __name__)


def _not_found():
    return jsonify({"error": "Intake not found."}), 404


@intakes_bp.route("/", methods=["GET"])
def list_my_intakes():
    """List the patient's intakes, newest first."""
    intakes = list_intakes(get_current_patient())
    return jsonify({"intakes": [i.to_dict() for i in intakes]}), 200


@intakes_bp.route("/", methods=["POST"])
def submit_intake():
    """
    Submit an intake.

    multipart/form-data:
        hospital_id, hospital_name, chief_complaint, onset_date,
        course_status, adherence                       (required)
        chief_complaint_detail, course_detail, adherence_reason,
        has_adverse_events, adverse_events_detail, has_allergies,
        allergies_detail, doctor_note                  (optional)
        existing_prescription_ids  JSON list of history prescription ids
        documents                  up to 5 prescription photos

    Returns the new intake and its first share token.
    """
    try:
        form = parse_intake_form(request.form.to_dict())
    except ValidationError as exc:
        details = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
        logger.info("Intake validation failed: %s", details)
        return jsonify({"error": "Invalid intake data.", "details": details}), 400

    try:
        documents = prepare_documents(request.files.getlist("documents"))
        prescription_ids = parse_prescription_ids(request.form.get("existing_prescription_ids"))
    except DocumentRejected as exc:
        return jsonify({"error": exc.message}), exc.status_code

    intake, token = create_intake(form, documents, get_current_patient(), prescription_ids)
    return jsonify({"intake": intake.to_dict(), "token": serialize_token(token)}), 201


@intakes_bp.route("/<intake_id>", methods=["GET"])
def get_my_intake(intake_id):
    intake = get_intake(intake_id, get_current_patient())
    if not intake:
        return _not_found()
    return jsonify({"intake": intake.to_dict()}), 200


@intakes_bp.route("/<intake_id>", methods=["DELETE"])
def delete_my_intake(intake_id):
    """Soft-delete an intake; its share links stop working immediately."""
    intake = get_intake(intake_id, get_current_patient())
    if not intake:
        return _not_found()
    delete_intake(intake)
    return jsonify({"success": True}), 200


@intakes_bp.route("/<intake_id>/summary", methods=["GET"])
def get_my_intake_summary(intake_id):
    """The same summary clinicians see, for the patient's own review."""
    if not get_intake(intake_id, get_current_patient()):
        return _not_found()
    return jsonify(get_intake_summary(intake_id)), 200


@intakes_bp.route("/<intake_id>/token", methods=["GET"])
def get_share_token(intake_id):
    """Current share token, issuing a new one if the last has expired."""
    intake = get_intake(intake_id, get_current_patient())
    if not intake:
        return _not_found()
    token = get_or_issue_token(intake)
    return jsonify({"intake": intake.to_dict(), "token": serialize_token(token)}), 200


@intakes_bp.route("/<intake_id>/token/regenerate", methods=["POST"])
def regenerate_share_token(intake_id):
    """Invalidate every earlier share token and issue a fresh one."""
    intake = get_intake(intake_id, get_current_patient())
    if not intake:
        return _not_found()
    token = regenerate_token(intake)
    return jsonify({"intake": intake.to_dict(), "token": serialize_token(token)}), 200


@intakes_bp.route("/<intake_id>/token/qr.png", methods=["GET"])
def get_share_qr(intake_id):
    intake = get_intake(intake_id, get_current_patient())
    if not intake:
        return _not_found()
    token = get_or_issue_token(intake)
    response = Response(render_qr_png(build_view_url(token)), mimetype="image/png")
    response.headers["Cache-Control"] = "no-store"
    return response


@intakes_bp.route("/<intake_id>/logs", methods=["GET"])
def get_intake_access_logs(intake_id):
    """Who opened the share link, and when."""
    if not get_intake(intake_id, get_current_patient()):
        return _not_found()
    logs = get_access_logs(intake_id)
    return jsonify({"access_logs": [log.to_dict() for log in logs]}), 200
