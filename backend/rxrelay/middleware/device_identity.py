"""
Device identity middleware – resolves the calling patient.
Patient-facing /api/* routes need a device identifier, taken from the
X-Device-Id header or, failing that, the signed session cookie.
"""

import re

from flask import g, jsonify, request, session

from rxrelay.services.patient_service import get_or_create_patient

# Routes that do not identify a patient
PUBLIC_PREFIXES = ("/api/health", "/api/hospitals", "/api/intake-options", "/api/view")

DEVICE_HEADER = "X-Device-Id"
_DEVICE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


def device_identity_middleware():
    """Before-request hook: attaches g.current_patient."""
    if request.method == "OPTIONS":
        return None

    path = request.path
    if not path.startswith("/api/"):
        return None

    if any(path.startswith(p) for p in PUBLIC_PREFIXES):
        return None

    device_id = (request.headers.get(DEVICE_HEADER) or session.get("device_id") or "").strip()
    if not device_id:
        return jsonify({"error": f"Missing device identifier ({DEVICE_HEADER} header)."}), 401
    if not _DEVICE_ID_RE.match(device_id):
        return jsonify({"error": "Malformed device identifier."}), 401

    session["device_id"] = device_id
    g.current_patient = get_or_create_patient(device_id)
    return None


def get_current_patient():
    """Convenience accessor for the identified patient."""
    return getattr(g, "current_patient", None)
