"""
Pytest configuration & fixtures for RxRelay backend tests.

Key design decisions:
  - Uses sqlite:///:memory: for speed and isolation.
  - The OpenAI client is never constructed: extraction is faked either at the
    client level (_get_client) or at the intake-service import site.
  - Every test gets its own device id, so rows never leak between tests
    even though the database lives for the whole session.
"""

import io
import json
import os
import sys
import uuid
from types import SimpleNamespace
from unittest import mock

import pytest

# ── 1. Ensure backend package is importable ──
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# ── 2. Set test environment BEFORE anything else ──
os.environ["OPENAI_API_KEY"] = "test-key-not-real"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["APP_ENV"] = "testing"
os.environ["PUBLIC_BASE_URL"] = "https://rxrelay.test"
os.environ["RATE_LIMIT_DEFAULT"] = "500/minute"

# ── 3. NOW safe to import application modules ──
from rxrelay.main import create_app
from rxrelay.database import db as _db
from rxrelay.models.schemas import ExtractedMedication, IntakeForm
from rxrelay.services.extraction_service import OcrResult
from rxrelay.services.intake_service import create_intake
from rxrelay.services.patient_service import get_or_create_patient


# ═══════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    application = create_app()
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    """Flask test client with database ready."""
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield
        _db.session.rollback()


@pytest.fixture
def device_id():
    return uuid.uuid4().hex


@pytest.fixture
def device_headers(device_id):
    return {"X-Device-Id": device_id}


@pytest.fixture
def patient(app_ctx, device_id):
    return get_or_create_patient(device_id)


@pytest.fixture
def fake_extraction():
    """
    Replace both AI calls made while creating an intake.
    Yields the two mocks so tests can set return values.
    """
    with mock.patch("rxrelay.services.intake_service.extract_medications_from_image") as extract, \
            mock.patch("rxrelay.services.intake_service.detect_conflicts") as conflicts:
        extract.return_value = ocr_result()
        conflicts.return_value = []
        yield SimpleNamespace(extract=extract, conflicts=conflicts)


# ═══════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════

VALID_FORM = {
    "hospital_id": "hosp-1",
    "hospital_name": "Severance Hospital",
    "chief_complaint": "headache",
    "chief_complaint_detail": "Throbbing, left side",
    "onset_date": "2026-10-10",
    "course_status": "worsening",
    "course_detail": "",
    "adherence": "partial",
    "adherence_reason": "Forgot evening doses",
    "has_adverse_events": "false",
    "adverse_events_detail": "",
    "has_allergies": "true",
    "allergies_detail": "Penicillin",
    "doctor_note": "",
}


def form_data(**overrides):
    data = dict(VALID_FORM)
    data.update(overrides)
    return data


def image_upload(name="rx.jpg", content=b"\xff\xd8\xff\xe0fake-jpeg", mime="image/jpeg"):
    return (io.BytesIO(content), name, mime)


def extracted(name, confidence=90, **fields):
    return ExtractedMedication(medication_name=name, confidence=confidence, raw_ocr_text="RAW", **fields)


def ocr_result(*medications, **fields):
    return OcrResult(medications=list(medications), raw_text="RAW", **fields)


def make_intake(patient=None, documents=(), **overrides):
    """Create an intake straight through the service (needs an app context)."""
    form = IntakeForm.model_validate(form_data(**overrides))
    return create_intake(form, list(documents), patient)


def chat_response(content):
    """Shape of openai's ChatCompletion as far as the services read it."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def fake_openai_client(*contents, error=None):
    client = mock.MagicMock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        client.chat.completions.create.side_effect = [chat_response(c) for c in contents]
    return client
