"""
Access token service – the bearer tokens behind the clinician QR code.

A token is active while it is not invalidated and the wall clock is strictly
before its expiry. Nothing expires tokens actively; every read compares
timestamps. Regenerating invalidates every earlier token of the intake.
"""

import base64
import io
import logging
import uuid
from datetime import timedelta
from typing import Optional

import qrcode

from rxrelay.config import Config
from rxrelay.database import db
from rxrelay.models.models import AccessToken, utcnow

logger = logging.getLogger("rxrelay.tokens")


def issue_token(intake, now=None) -> AccessToken:
    now = now or utcnow()
    token = AccessToken(
        intake_id=intake.id,
        token=str(uuid.uuid4()),
        created_at=now,
        expires_at=now + timedelta(minutes=Config.ACCESS_TOKEN_TTL_MINUTES),
        is_invalidated=False,
    )
    db.session.add(token)
    db.session.commit()
    logger.info("Issued access token %s for intake %s", token.id, intake.id)
    return token


def find_active_token_for_intake(intake_id: str, now=None) -> Optional[AccessToken]:
    now = now or utcnow()
    return (
        AccessToken.query
        .filter(
            AccessToken.intake_id == intake_id,
            AccessToken.is_invalidated.is_(False),
            AccessToken.expires_at > now,
        )
        .order_by(AccessToken.expires_at.desc())
        .first()
    )


def get_or_issue_token(intake, now=None) -> AccessToken:
    """Reuse the intake's active token, issuing a fresh one if none is left."""
    return find_active_token_for_intake(intake.id, now) or issue_token(intake, now)


def invalidate_tokens(intake_id: str) -> int:
    updated = (
        AccessToken.query
        .filter(AccessToken.intake_id == intake_id, AccessToken.is_invalidated.is_(False))
        .update({AccessToken.is_invalidated: True}, synchronize_session=False)
    )
    db.session.commit()
    if updated:
        logger.info("Invalidated %d token(s) for intake %s", updated, intake_id)
    return updated


def regenerate_token(intake, now=None) -> AccessToken:
    invalidate_tokens(intake.id)
    return issue_token(intake, now)


def resolve_token(value: str, now=None) -> Optional[AccessToken]:
    """Return the active token with this value, or None if unknown/expired/invalidated."""
    if not value:
        return None
    token = AccessToken.query.filter_by(token=value).first()
    if token is None or not token.is_active(now):
        return None
    return token


def consume_token(token: AccessToken) -> None:
    """Burn a token after a successful view when single-use links are enabled."""
    if not Config.ACCESS_TOKEN_SINGLE_USE:
        return
    token.is_invalidated = True
    db.session.commit()


def build_view_url(token: AccessToken) -> str:
    return f"{Config.PUBLIC_BASE_URL}/view/{token.token}"


def render_qr_png(url: str) -> bytes:
    qr = qrcode.QRCode(version=None, box_size=8, border=4)
    qr.add_data(url)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(url: str) -> str:
    return "data:image/png;base64," + base64.b64encode(render_qr_png(url)).decode()


def serialize_token(token: AccessToken, now=None) -> dict:
    """Token row plus everything the share screen needs to render the QR code."""
    now = now or utcnow()
    data = token.to_dict()
    view_url = build_view_url(token)
    data["view_url"] = view_url
    data["seconds_remaining"] = max(0, int((token.expires_at - now).total_seconds()))
    data["qr_code"] = render_qr_data_url(view_url)
    return data
