"""
Hospital directory – the list a patient picks from before starting an intake.
"""

import logging

from rxrelay.database import db
from rxrelay.models.models import Hospital

logger = logging.getLogger("rxrelay.hospitals")

_SEED_HOSPITALS = [
    {"name": "Seoul National University Hospital", "address": "101 Daehak-ro, Jongno-gu, Seoul", "type": "university_hospital"},
    {"name": "Severance Hospital", "address": "50-1 Yonsei-ro, Seodaemun-gu, Seoul", "type": "university_hospital"},
    {"name": "Samsung Medical Center", "address": "81 Irwon-ro, Gangnam-gu, Seoul", "type": "university_hospital"},
    {"name": "Asan Medical Center", "address": "88 Olympic-ro 43-gil, Songpa-gu, Seoul", "type": "university_hospital"},
    {"name": "Gangnam Severance Hospital", "address": "211 Eonju-ro, Gangnam-gu, Seoul", "type": "university_hospital"},
    {"name": "Jungang Internal Medicine Clinic", "address": "73 Myeongdong-gil, Jung-gu, Seoul", "type": "clinic"},
    {"name": "Haengbok Family Clinic", "address": "396 World Cup buk-ro, Mapo-gu, Seoul", "type": "clinic"},
    {"name": "Geongang Pharmacy", "address": "152 Teheran-ro, Gangnam-gu, Seoul", "type": "pharmacy"},
    {"name": "Onnuri Pharmacy", "address": "465 Gangnam-daero, Seocho-gu, Seoul", "type": "pharmacy"},
    {"name": "Gyeonggi Provincial Medical Center Suwon", "address": "245 Suseong-ro, Jangan-gu, Suwon", "type": "public_hospital"},
]


def list_hospitals() -> list:
    return Hospital.query.order_by(Hospital.name).all()


def seed_hospitals() -> int:
    """Insert the sample directory when the table is empty. Returns rows added."""
    if Hospital.query.first() is not None:
        return 0
    db.session.add_all([Hospital(**h) for h in _SEED_HOSPITALS])
    db.session.commit()
    logger.info("Seeded %d hospitals", len(_SEED_HOSPITALS))
    return len(_SEED_HOSPITALS)
