"""Tests for log sanitization."""

from utils.log_sanitizer import mask_token, sanitize_for_log, sanitize_log


class TestSanitizeLog:
    """Test credential redaction."""

    def test_email_redacted(self):
        assert sanitize_log("linked user jane@example.com") == "linked user [EMAIL]"

    def test_auth_header_redacted(self):
        assert sanitize_log("Authorization: Basic abc123XYZ") == "Authorization: Basic [REDACTED]"

    def test_key_value_redacted(self):
        result = sanitize_log('{"rest_api_key": "os_v2_app_abcdefgh"}')
        assert "os_v2_app_abcdefgh" not in result
        assert "[REDACTED]" in result

    def test_plain_text_untouched(self):
        assert sanitize_log("Gateway error 503: upstream timeout") == "Gateway error 503: upstream timeout"

    def test_empty(self):
        assert sanitize_log("") == ""


class TestSanitizeForLog:
    """Test truncation."""

    def test_none(self):
        assert sanitize_for_log(None) == "<None>"

    def test_bytes_decoded(self):
        assert sanitize_for_log(b"bad request") == "bad request"

    def test_truncated(self):
        result = sanitize_for_log("x " * 200, max_length=20)
        assert result.startswith("x x x")
        assert result.endswith("[400 chars total]")


class TestMaskToken:
    """Test token masking."""

    def test_keeps_tail(self):
        assert mask_token("3f2b9c1e-0000-4a1b-9c3d-5e6f7a8b9c0d") == "…9c0d"

    def test_short_token(self):
        assert mask_token("abc") == "…***"

    def test_missing(self):
        assert mask_token(None) == "<none>"
        assert mask_token("") == "<none>"
