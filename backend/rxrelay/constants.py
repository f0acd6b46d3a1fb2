"""
Fixed option lists shared by validation, the intake form and the API.
"""

CHIEF_COMPLAINTS = [
    {"value": "pain", "label": "Pain"},
    {"value": "fever", "label": "Fever"},
    {"value": "cough", "label": "Cough"},
    {"value": "headache", "label": "Headache"},
    {"value": "fatigue", "label": "Fatigue"},
    {"value": "dizziness", "label": "Dizziness"},
    {"value": "nausea", "label": "Nausea"},
    {"value": "digestive", "label": "Indigestion"},
    {"value": "skin", "label": "Skin symptoms"},
    {"value": "respiratory", "label": "Shortness of breath"},
    {"value": "other", "label": "Other"},
]

COURSE_STATUS = [
    {"value": "improving", "label": "Improving"},
    {"value": "worsening", "label": "Worsening"},
    {"value": "stable", "label": "No change"},
]

ADHERENCE_OPTIONS = [
    {"value": "yes", "label": "Yes, taking as prescribed"},
    {"value": "partial", "label": "Partially"},
    {"value": "no", "label": "Not taking"},
]

CHIEF_COMPLAINT_VALUES = {c["value"] for c in CHIEF_COMPLAINTS}

# Medication.source_type
SOURCE_PRESCRIPTION = "prescription"
SOURCE_HISTORY = "history"

# VerificationFlag.flag_type
FLAG_DUPLICATE = "duplicate"
FLAG_DATE_OVERLAP = "date_overlap"
FLAG_ALLERGY_CONFLICT = "allergy_conflict"
FLAG_LOW_CONFIDENCE = "low_confidence"
CONFLICT_FLAG_TYPES = (FLAG_DUPLICATE, FLAG_DATE_OVERLAP, FLAG_ALLERGY_CONFLICT)

# AdherenceLog.status
ADHERENCE_TAKEN = "taken"
ADHERENCE_MISSED = "missed"
ADHERENCE_SKIPPED = "skipped"
ADHERENCE_STATUSES = (ADHERENCE_TAKEN, ADHERENCE_MISSED, ADHERENCE_SKIPPED)

# Notification.notification_type
NOTIFY_INTAKE_VIEWED = "intake_viewed"

ACCESS_ACTION_VIEW = "view"

# Confidence assumed for medications stored without one.
DEFAULT_CONFIDENCE = 80
