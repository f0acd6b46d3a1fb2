"""
Share token tests – expiry boundaries, regeneration and invalidation,
exercised against the token service directly with an explicit clock.
"""

from datetime import timedelta

from conftest import make_intake
from rxrelay.config import Config
from rxrelay.services.intake_service import delete_intake, record_view
from rxrelay.services.token_service import (
    find_active_token_for_intake,
    get_or_issue_token,
    issue_token,
    regenerate_token,
    render_qr_png,
    resolve_token,
    serialize_token,
)

TTL = timedelta(minutes=10)


class TestTokenLifetime:
    def test_ten_minute_lifetime(self, patient):
        _, token = make_intake(patient)
        assert token.expires_at - token.created_at == TTL
        assert token.is_invalidated is False

    def test_active_just_before_expiry(self, patient):
        _, token = make_intake(patient)
        now = token.expires_at - timedelta(microseconds=1)
        assert token.is_active(now)
        assert resolve_token(token.token, now) is not None

    def test_inactive_at_expiry(self, patient):
        """Expiry is exclusive: the expiry instant itself is already too late."""
        _, token = make_intake(patient)
        assert not token.is_active(token.expires_at)
        assert resolve_token(token.token, token.expires_at) is None
        assert find_active_token_for_intake(token.intake_id, token.expires_at) is None

    def test_inactive_after_expiry(self, patient):
        _, token = make_intake(patient)
        later = token.expires_at + timedelta(seconds=1)
        assert resolve_token(token.token, later) is None

    def test_unknown_or_blank_token(self, app_ctx):
        assert resolve_token("") is None
        assert resolve_token("not-a-token") is None


class TestTokenReuse:
    def test_active_token_reused(self, patient):
        intake, token = make_intake(patient)
        assert get_or_issue_token(intake).id == token.id

    def test_new_token_after_expiry(self, patient):
        intake, token = make_intake(patient)
        later = token.expires_at + timedelta(minutes=1)
        fresh = get_or_issue_token(intake, later)
        assert fresh.id != token.id
        assert fresh.expires_at == later + TTL

    def test_latest_expiry_wins(self, patient):
        intake, token = make_intake(patient)
        newer = issue_token(intake, token.created_at + timedelta(minutes=5))
        assert find_active_token_for_intake(intake.id, token.created_at + timedelta(minutes=6)).id == newer.id


class TestTokenInvalidation:
    def test_regenerate_invalidates_all_previous(self, patient):
        intake, first = make_intake(patient)
        second = issue_token(intake)
        third = regenerate_token(intake)

        assert first.is_invalidated is True
        assert second.is_invalidated is True
        assert third.is_invalidated is False
        assert resolve_token(first.token) is None
        assert resolve_token(third.token).id == third.id

    def test_delete_invalidates(self, patient):
        intake, token = make_intake(patient)
        delete_intake(intake)
        assert token.is_invalidated is True
        assert resolve_token(token.token) is None

    def test_tokens_reusable_when_single_use_off(self, patient, monkeypatch):
        monkeypatch.setattr(Config, "ACCESS_TOKEN_SINGLE_USE", False)
        _, token = make_intake(patient)
        assert record_view(token) is not None
        assert resolve_token(token.token) is not None

    def test_view_burns_token(self, patient):
        _, token = make_intake(patient)
        assert record_view(token) is not None
        assert resolve_token(token.token) is None


class TestTokenPresentation:
    def test_serialize(self, patient):
        _, token = make_intake(patient)
        data = serialize_token(token, now=token.created_at + timedelta(seconds=30))
        assert data["token"] == token.token
        assert data["view_url"] == f"https://rxrelay.test/view/{token.token}"
        assert data["seconds_remaining"] == 570
        assert data["qr_code"].startswith("data:image/png;base64,")

    def test_seconds_remaining_never_negative(self, patient):
        _, token = make_intake(patient)
        data = serialize_token(token, now=token.expires_at + timedelta(hours=1))
        assert data["seconds_remaining"] == 0

    def test_qr_png(self):
        png = render_qr_png("https://rxrelay.test/view/abc")
        assert png.startswith(b"\x89PNG\r\n\x1a\n")
