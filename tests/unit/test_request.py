"""
Unit tests for HTTP request parsing.
"""

import pytest

from httppipeline.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.user_agent == "Mozilla/5.0 (X11; Linux x86_64)"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.get_query("token") == "123"
        assert request.get_query("page") == "1"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_with_body(self, sample_post_request: bytes):
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.is_json is True
        assert request.json == {
            "name": "Dana Scully", "age": 34, "address": "2630 Hegal Place",
        }

    def test_parse_url_encoded_query(self):
        raw = b"GET /user/7?filter=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/user/7"
        assert request.get_query("filter") == "hello world"

    def test_parse_invalid_method(self):
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_parse_missing_terminator(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

    def test_parse_path_traversal_blocked(self):
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert "path" in str(exc_info.value).lower()

    def test_parse_request_too_large(self):
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_invalid_content_length(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: ten\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_body_truncated_to_content_length(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 4\r\n\r\nbodyEXTRA"
        request = parse_request(raw)

        assert request.body == b"body"
        assert request.content_length == 4

    def test_http_version_keep_alive_defaults(self):
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.is_keep_alive is False

        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.is_keep_alive is True

    def test_case_insensitive_headers(self):
        raw = b"GET / HTTP/1.1\r\nUSER-AGENT: Mozilla/5.0\r\n\r\n"
        request = parse_request(raw)

        assert request.user_agent == "Mozilla/5.0"
        assert request.get_header("User-Agent") == "Mozilla/5.0"
        assert request.get_header("user-agent") == "Mozilla/5.0"

    def test_duplicate_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: text/html\r\nAccept: application/json\r\n\r\n"
        request = parse_request(raw)

        assert request.headers["accept"] == "text/html, application/json"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_mixed_case_headers_normalized(self):
        request = HTTPRequest(method="get", path="/", headers={"User-Agent": "Mozilla/5.0"})

        assert request.method == "GET"
        assert request.headers == {"user-agent": "Mozilla/5.0"}

    def test_missing_user_agent_is_none(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.user_agent is None
        assert request.get_header("X-Missing") is None
        assert request.get_header("X-Missing", "default") == "default"

    def test_query_list(self):
        request = HTTPRequest(
            method="GET",
            path="/",
            query_params={"tags": ["python", "http", "server"]},
        )

        assert request.get_query_list("tags") == ["python", "http", "server"]
        assert request.get_query("tags") == "python"

    def test_invalid_json_body(self):
        request = HTTPRequest(method="POST", path="/", body=b"{not json")

        with pytest.raises(HTTPParseError):
            request.json

    def test_empty_body_json_is_none(self):
        assert HTTPRequest(method="POST", path="/").json is None

    def test_attachments_start_empty(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.attachments == {}
        assert request.deadline is None
