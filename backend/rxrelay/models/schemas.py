"""
Pydantic schemas for inbound data that cannot be trusted as-is:
the patient's intake form and the JSON returned by the extraction model.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rxrelay.constants import CHIEF_COMPLAINT_VALUES


# =============================================================================
# Intake form
# =============================================================================

_OPTIONAL_TEXT_FIELDS = (
    "chief_complaint_detail",
    "course_detail",
    "adherence_reason",
    "adverse_events_detail",
    "allergies_detail",
    "doctor_note",
)


class IntakeForm(BaseModel):
    """Pre-visit questionnaire as submitted by the patient."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    hospital_id: str = Field(min_length=1, max_length=36)
    hospital_name: str = Field(min_length=1, max_length=255)

    chief_complaint: str = Field(min_length=1)
    chief_complaint_detail: Optional[str] = None

    onset_date: str = Field(min_length=1, max_length=50)

    course_status: Literal["improving", "worsening", "stable"]
    course_detail: Optional[str] = None

    adherence: Literal["yes", "partial", "no"]
    adherence_reason: Optional[str] = None

    has_adverse_events: bool = False
    adverse_events_detail: Optional[str] = None
    has_allergies: bool = False
    allergies_detail: Optional[str] = None

    doctor_note: Optional[str] = None

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("has_adverse_events", "has_allergies", mode="before")
    @classmethod
    def _form_bool(cls, value):
        # HTML forms send "true"/"false"; anything but "true" is False.
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return value

    @field_validator("chief_complaint")
    @classmethod
    def _known_complaint(cls, value: str) -> str:
        if value not in CHIEF_COMPLAINT_VALUES:
            raise ValueError(f"unknown chief complaint '{value}'")
        return value


# =============================================================================
# AI extraction response
# =============================================================================

class ExtractedMedication(BaseModel):
    """One medication as read off a prescription image."""

    medication_name: str = Field(min_length=1)
    dose: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    prescription_date: Optional[str] = None
    dispensing_date: Optional[str] = None
    confidence: int = Field(ge=0, le=100)
    ingredients: Optional[str] = None
    indication: Optional[str] = None
    doses_per_day: Optional[int] = None
    total_doses: Optional[int] = None
    raw_ocr_text: str = ""


class OcrResponse(BaseModel):
    medications: List[ExtractedMedication]
    raw_text: str
    hospital_name: Optional[str] = None
    patient_condition: Optional[str] = None


class DetectedConflict(BaseModel):
    type: Literal["duplicate", "date_overlap", "allergy_conflict", "low_confidence"]
    description: str = Field(min_length=1)
    related_medication_ids: List[str] = Field(default_factory=list)
