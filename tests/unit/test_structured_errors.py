"""
Unit tests for structured API error handling.
"""

import json
import pytest
from unittest.mock import Mock
from spark_cloud._errors import SparkAPIError, SparkError
from spark_cloud._client import _parse_error_response, SparkHttpClient


class TestSparkAPIError:
    """Tests for the SparkAPIError class."""

    def test_error_creation_minimal(self):
        error = SparkAPIError(status_code=500, message="Internal error")

        assert isinstance(error, SparkError)
        assert error.body is None
        assert error.error_code is None
        assert error.error_description is None
        assert error.info is None

    def test_str_with_code_and_body(self):
        error = SparkAPIError(
            status_code=401,
            message="The access token provided is invalid.",
            error_code="invalid_token",
            body="x" * 120,
        )
        s = str(error)

        assert "401" in s
        assert "invalid_token" in s
        assert "120 chars" in s

    def test_repr_format(self):
        error = SparkAPIError(status_code=404, message="Variable not found", error_code="Variable not found")
        r = repr(error)

        assert "SparkAPIError(" in r
        assert "status_code=404" in r
        assert "error_code='Variable not found'" in r

    def test_to_dict(self):
        error = SparkAPIError(
            status_code=400,
            message="Bad args",
            body='{"error":"..."}',
            error_code="invalid_request",
            error_description="Bad args",
            info="see docs",
        )

        assert error.to_dict() == {
            "status_code": 400,
            "message": "Bad args",
            "error_code": "invalid_request",
            "error_description": "Bad args",
            "info": "see docs",
            "body": '{"error":"..."}',
        }

    @pytest.mark.parametrize(
        "status, client, server, auth, not_found",
        [
            (400, True, False, False, False),
            (401, True, False, True, False),
            (403, True, False, True, False),
            (404, True, False, False, True),
            (500, False, True, False, False),
            (503, False, True, False, False),
        ],
    )
    def test_classification(self, status, client, server, auth, not_found):
        e = SparkAPIError(status_code=status, message="x")

        assert e.is_client_error is client
        assert e.is_server_error is server
        assert e.is_auth_error is auth
        assert e.is_not_found is not_found


class TestParseErrorResponse:
    """Tests for _parse_error_response."""

    def test_particle_envelope_with_description(self):
        body = json.dumps({
            "ok": False,
            "error": "invalid_token",
            "error_description": "The access token provided is invalid.",
        })

        error = _parse_error_response(401, body, "application/json; charset=utf-8")

        assert error.error_code == "invalid_token"
        assert error.error_description == "The access token provided is invalid."
        assert error.message == "The access token provided is invalid."
        assert error.body == body

    def test_particle_envelope_with_error_only(self):
        body = json.dumps({"ok": False, "error": "Variable not found", "info": {"code": 1}})

        error = _parse_error_response(404, body, "application/json")

        assert error.message == "Variable not found"
        assert error.error_code == "Variable not found"
        assert error.info == {"code": 1}

    def test_message_field_fallback(self):
        error = _parse_error_response(500, '{"message": "  upstream down "}', "application/json")

        assert error.message == "upstream down"
        assert error.error_code is None

    def test_non_json_content_type_uses_body(self):
        error = _parse_error_response(502, "<html>Bad Gateway</html>", "text/html")

        assert error.message == "<html>Bad Gateway</html>"
        assert error.error_code is None

    def test_invalid_json_uses_body(self):
        error = _parse_error_response(500, "{not json", "application/json")

        assert error.message == "{not json"

    def test_non_dict_json(self):
        error = _parse_error_response(400, '["a", "b"]', "application/json")

        assert error.message == "['a', 'b']"

    def test_empty_body(self):
        error = _parse_error_response(500, "", "application/json")

        assert error.message == "HTTP error"
        assert error.body == ""


class TestRaiseForStatusIntegration:
    """Tests for SparkHttpClient.raise_for_status with structured errors."""

    def test_raises_structured_error(self):
        resp = Mock()
        resp.status_code = 403
        resp.text = json.dumps({"ok": False, "error": "Permission Denied"})
        resp.headers = {"content-type": "application/json"}

        with pytest.raises(SparkAPIError) as exc:
            SparkHttpClient.raise_for_status(resp)

        assert exc.value.status_code == 403
        assert exc.value.error_code == "Permission Denied"

    def test_success_does_not_raise(self):
        resp = Mock()
        resp.status_code = 200

        SparkHttpClient.raise_for_status(resp)
