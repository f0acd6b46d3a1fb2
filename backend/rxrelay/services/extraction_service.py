"""
Medication extraction service.
Sends a photographed prescription or dispensing record to the OpenAI vision
model and turns its loosely-typed JSON reply into validated medication data.
Also asks the text model to point out conflicts between the medications and
what the patient reported.

This is an INFORMATION aid: every extracted value is shown to clinical staff
with its confidence, never acted on automatically.
"""

import base64
import json
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from openai import OpenAI
from pydantic import ValidationError

from rxrelay.config import Config
from rxrelay.constants import CONFLICT_FLAG_TYPES
from rxrelay.models.schemas import DetectedConflict, ExtractedMedication, OcrResponse

logger = logging.getLogger("rxrelay.extraction")

_client = None


def _get_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI(api_key=Config.OPENAI_API_KEY)
    return _client


@dataclass
class OcrResult:
    medications: List[ExtractedMedication] = field(default_factory=list)
    raw_text: str = ""
    hospital_name: Optional[str] = None
    patient_condition: Optional[str] = None
    errors: List[str] = field(default_factory=list)


# ── Prompt: read medications off an image ──────────────────────────────────

EXTRACTION_PROMPT = """This image is a medical prescription or a pharmacy dispensing record.
Extract every medication on it in detail.

Return a JSON object with exactly this structure:
{
    "medications": [
        {
            "medication_name": "name of the medication as printed",
            "dose": "dose per administration (e.g. '500mg', '1 tablet')",
            "frequency": "how often (e.g. '3 times a day')",
            "duration": "how long (e.g. '7 days')",
            "prescription_date": "prescription date, YYYY-MM-DD",
            "dispensing_date": "dispensing date, YYYY-MM-DD",
            "confidence": integer 0-100, how sure you are this line was read correctly,
            "ingredients": "main active ingredients (may be inferred from the name)",
            "indication": "what the medication is commonly used for",
            "doses_per_day": integer number of doses per day,
            "total_doses": integer total doses (days x doses per day)
        }
    ],
    "raw_text": "all text you could read in the image",
    "hospital_name": "issuing hospital, clinic or pharmacy",
    "patient_condition": "diagnosis or condition name, if printed"
}

RULES:
- Use null for any date that is unclear.
- Use null for anything you cannot read. Do NOT invent values.
- When unsure about a line, report a confidence between 60 and 70.
- Spell medication names as accurately as possible.
- Derive doses_per_day from the frequency (e.g. "3 times a day" -> 3)."""


# ── Prompt: conflicts between medications and patient reports ──────────────

CONFLICT_PROMPT = """Review the following medication list for potential problems.

Medications:
{medication_lines}

Patient-reported allergies: {allergies}
Patient-reported adverse events: {adverse_events}

Check for these problem types only:
1. duplicate: the same or an equivalent medication listed more than once
2. date_overlap: overlapping courses of medications that should not overlap
3. allergy_conflict: a medication that may conflict with a reported allergy

Return a JSON object with exactly this structure:
{{
    "conflicts": [
        {{
            "type": "duplicate" or "date_overlap" or "allergy_conflict",
            "description": "one or two sentences describing the problem",
            "related_medication_ids": ["ids from the list above"]
        }}
    ]
}}

If there are no problems return {{"conflicts": []}}."""


def _to_data_url(image_bytes: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def _optional_text(value) -> Optional[str]:
    return str(value) if value else None


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _optional_int(value) -> Optional[int]:
    if not _is_number(value):
        return None
    return int(value)


def _coerce_confidence(value) -> int:
    # json.loads accepts NaN and Infinity
    if not _is_number(value):
        return 50
    return min(100, max(0, int(round(value))))


def _coerce_response(raw: dict, errors: List[str]) -> OcrResult:
    """Salvage what we can from a reply that failed schema validation."""
    raw_text = raw.get("raw_text") if isinstance(raw.get("raw_text"), str) else ""
    medications = []
    items = raw.get("medications")
    for med in items if isinstance(items, list) else []:
        if not isinstance(med, dict):
            continue
        name = med.get("medication_name")
        if not isinstance(name, str) or not name.strip():
            continue
        medications.append(ExtractedMedication(
            medication_name=name.strip(),
            dose=_optional_text(med.get("dose")),
            frequency=_optional_text(med.get("frequency")),
            duration=_optional_text(med.get("duration")),
            prescription_date=_optional_text(med.get("prescription_date")),
            dispensing_date=_optional_text(med.get("dispensing_date")),
            confidence=_coerce_confidence(med.get("confidence")),
            ingredients=_optional_text(med.get("ingredients")),
            indication=_optional_text(med.get("indication")),
            doses_per_day=_optional_int(med.get("doses_per_day")),
            total_doses=_optional_int(med.get("total_doses")),
            raw_ocr_text=raw_text,
        ))
    return OcrResult(
        medications=medications,
        raw_text=raw_text,
        hospital_name=_optional_text(raw.get("hospital_name")),
        patient_condition=_optional_text(raw.get("patient_condition")),
        errors=errors,
    )


def parse_extraction_response(content: Optional[str]) -> OcrResult:
    """
    Validate the model's JSON reply.

    A reply that matches OcrResponse is returned as-is (with raw text copied
    onto every medication). Anything else is coerced field by field and the
    validation messages are returned in ``errors``.
    Raises json.JSONDecodeError when the reply is not JSON at all.
    """
    raw = json.loads(content or "{}")
    if not isinstance(raw, dict):
        raw = {}

    try:
        parsed = OcrResponse.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Extraction response failed validation (%d errors)", exc.error_count())
        messages = [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()]
        return _coerce_response(raw, messages)

    for med in parsed.medications:
        med.raw_ocr_text = parsed.raw_text
    return OcrResult(
        medications=parsed.medications,
        raw_text=parsed.raw_text,
        hospital_name=parsed.hospital_name or None,
        patient_condition=parsed.patient_condition or None,
    )


def extract_medications_from_image(image_bytes: bytes, mime_type: str = "image/jpeg") -> OcrResult:
    """Read medications off one image. Never raises; failures land in ``errors``."""
    try:
        client = _get_client()
        response = client.chat.completions.create(
            model=Config.OPENAI_VISION_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You read medical prescriptions. Return valid JSON only.",
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": _to_data_url(image_bytes, mime_type)}},
                    ],
                },
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        return parse_extraction_response(response.choices[0].message.content)
    except Exception as e:
        logger.error("Medication extraction failed: %s", e)
        return OcrResult(errors=[f"Extraction failed: {e}"])


def _medication_line(med) -> str:
    return (
        f"- id={med.id}: {med.medication_name} "
        f"(dose: {med.dose or 'unknown'}, duration: {med.duration or 'unknown'}, "
        f"prescribed: {med.prescription_date or 'unknown'})"
    )


def detect_conflicts(medications: list, allergies: Optional[str], adverse_events: Optional[str]) -> List[dict]:
    """
    Ask the text model for duplicate / overlap / allergy problems.

    ``medications`` are persisted Medication rows (they need ids).
    Returns a list of {type, description, related_medication_ids}; [] on any failure.
    """
    if not medications:
        return []

    known_ids = {m.id for m in medications}
    try:
        client = _get_client()
        prompt = CONFLICT_PROMPT.format(
            medication_lines="\n".join(_medication_line(m) for m in medications),
            allergies=allergies or "none",
            adverse_events=adverse_events or "none",
        )
        response = client.chat.completions.create(
            model=Config.OPENAI_TEXT_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You check medication lists for safety problems. Return valid JSON only.",
                },
                {"role": "user", "content": prompt},
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        raw = json.loads(response.choices[0].message.content or "{}")
    except Exception as e:
        logger.error("Conflict detection failed: %s", e)
        return []

    items = raw.get("conflicts") if isinstance(raw, dict) else raw
    conflicts = []
    for item in items if isinstance(items, list) else []:
        try:
            conflict = DetectedConflict.model_validate(item)
        except ValidationError:
            logger.debug("Dropping malformed conflict item")
            continue
        if conflict.type not in CONFLICT_FLAG_TYPES:
            continue
        conflicts.append({
            "type": conflict.type,
            "description": conflict.description,
            "related_medication_ids": [i for i in conflict.related_medication_ids if i in known_ids],
        })
    return conflicts
