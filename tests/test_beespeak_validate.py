"""
Tests for beespeak API key validation.
"""

import pytest
import requests
from unittest.mock import Mock, patch


class TestValidateGroqKey:
    """Tests for validate_groq_key with the HTTP session mocked."""

    def test_short_key(self):
        from beespeak.validate import validate_groq_key

        result = validate_groq_key("abc")
        assert result.valid is False
        assert result.error == "Key too short"

    @pytest.mark.parametrize("status,valid,error", [
        (200, True, None),
        (401, False, "Invalid key"),
        (500, False, "HTTP 500"),
    ])
    def test_status_codes(self, status, valid, error):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.return_value = Mock(status_code=status)
            result = validate_groq_key("gsk_test_key_123")

        assert result.valid is valid
        assert result.error == error
        assert session.get.call_args.kwargs["headers"] == {"Authorization": "Bearer gsk_test_key_123"}

    def test_latency_recorded(self):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.return_value = Mock(status_code=200)
            result = validate_groq_key("gsk_test_key_123")

        assert result.latency_ms is not None
        assert result.latency_ms >= 0

    def test_timeout(self):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.side_effect = requests.Timeout()
            result = validate_groq_key("gsk_test_key_123")

        assert result.valid is False
        assert result.error == "Timeout"

    def test_connection_error(self):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.side_effect = requests.ConnectionError("unreachable")
            result = validate_groq_key("gsk_test_key_123")

        assert result.valid is False
        assert result.error == "unreachable"

    def test_known_model_accepted(self):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.return_value = Mock(status_code=200)
            session.get.return_value.json.return_value = {"data": [{"id": "whisper-large-v3"}]}
            result = validate_groq_key("gsk_test_key_123", model="whisper-large-v3")

        assert result.valid is True
        assert result.models == ["whisper-large-v3"]

    def test_unknown_model_rejected(self):
        """Test a key that cannot use the configured model is refused."""
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.return_value = Mock(status_code=200)
            session.get.return_value.json.return_value = {"data": [{"id": "whisper-large-v3"}]}
            result = validate_groq_key("gsk_test_key_123", model="whisper-x")

        assert result.valid is False
        assert result.error == "Unknown model: whisper-x"

    def test_unreadable_model_list_keeps_key_valid(self):
        from beespeak.validate import validate_groq_key

        with patch("beespeak.validate._session") as session:
            session.get.return_value = Mock(status_code=200)
            session.get.return_value.json.side_effect = ValueError("not json")
            result = validate_groq_key("gsk_test_key_123", model="whisper-large-v3")

        assert result.valid is True
        assert result.models == []
