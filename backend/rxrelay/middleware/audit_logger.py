"""
Audit logger – after-request hook that writes every API interaction
to the audit_log table. Share tokens and device ids never reach the log.
"""

import json
import logging
import re

from flask import g, request

from rxrelay.database import db
from rxrelay.models.models import AuditLog

logger = logging.getLogger("rxrelay.audit")

_REDACTED_KEYS = ("device_id", "token")
_VIEW_PATH_RE = re.compile(r"^/api/view/[^/]+")


def redact_path(path: str) -> str:
    """Strip the bearer token out of clinician view URLs."""
    return _VIEW_PATH_RE.sub("/api/view/<redacted>", path)


def audit_after_request(response):
    """Log every API request/response pair for compliance auditing."""
    if not request.path.startswith("/api/"):
        return response

    # Skip health checks from filling the log
    if request.path == "/api/health":
        return response

    try:
        patient = getattr(g, "current_patient", None)

        # Capture request body (truncated for safety)
        req_body = None
        if request.is_json:
            body = request.get_json(silent=True)
            if isinstance(body, dict):
                safe_body = {k: v for k, v in body.items() if k not in _REDACTED_KEYS}
                req_body = json.dumps(safe_body, default=str)[:2000]

        entry = AuditLog(
            patient_id=patient.id if patient else None,
            endpoint=redact_path(request.path)[:255],
            method=request.method,
            status_code=response.status_code,
            request_body=req_body,
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as exc:
        logger.warning("Audit logging failed: %s", exc)
        db.session.rollback()

    return response
