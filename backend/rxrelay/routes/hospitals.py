"""
Hospital directory route – public, no device identity required.
"""

from flask import Blueprint, jsonify

from rxrelay.services.hospital_service import list_hospitals

hospitals_bp = Blueprint("hospitals", __name__)


@hospitals_bp.route("/", methods=["GET"])
def get_hospitals():
    """List every hospital, clinic and pharmacy a patient can submit to."""
    return jsonify({"hospitals": [h.to_dict() for h in list_hospitals()]}), 200
