"""Tests for the log redaction processor."""

from notes_saas.core.logging import REDACTED, redact_secrets


class TestRedactSecrets:
    """Secret-looking keys never reach the renderer."""

    def test_masks_secret_keys(self) -> None:
        event = {
            "event": "Login failed",
            "password": "Abcdef1",
            "refresh_token": "eyJ...",
            "password_hash": "$2b$12$...",
            "Authorization": "Bearer eyJ...",
        }

        result = redact_secrets(None, "info", event)

        assert result["event"] == "Login failed"
        assert result["password"] == REDACTED
        assert result["refresh_token"] == REDACTED
        assert result["password_hash"] == REDACTED
        assert result["Authorization"] == REDACTED

    def test_leaves_ids_and_codes(self) -> None:
        event = {"event": "Token rejected", "user_id": "u-1", "tenant_id": "t-1", "code": "INVALID_TOKEN"}

        result = redact_secrets(None, "warning", dict(event))

        assert result == event
