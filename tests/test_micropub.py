"""
Unit Tests for the Micropub Flask endpoint and token verification.

Test Coverage:
    - Form-encoded, multipart and JSON create requests
    - Access token extraction and IndieAuth verification
    - Error mapping to Micropub error responses
    - Micropub queries and health check

Testing Strategy:
    The publishing pipeline and token endpoint are replaced with mocks;
    Flask's test client drives the endpoint.

Running Tests:
    $ pytest tests/test_micropub.py -v
"""
import io
from unittest.mock import MagicMock, patch

import pytest
import requests

from micropub import TokenVerificationError, TokenVerifier, create_app
from micropub.auth import CREATE_SCOPES
from micropub.micropub import MicropubRequestError, parse_json_document
from publishing import Publication, PersistenceError, PublishError, RejectedRequestError


POST_URL = "https://example.com/microblog/2024/01/02_03.04.05_hello.html"
AUTH = {"Authorization": "Bearer secret-token"}


@pytest.fixture
def handler():
    handler = MagicMock()
    handler.handle.return_value = Publication(url=POST_URL)
    return handler


@pytest.fixture
def verifier():
    verifier = MagicMock()
    verifier.verify.return_value = {"me": "https://example.com/", "scope": "create"}
    return verifier


@pytest.fixture
def client(handler, verifier):
    app = create_app(handler, config={}, verifier=verifier)
    app.config["TESTING"] = True
    return app.test_client()


def handled_document(handler):
    handler.handle.assert_called_once()
    return handler.handle.call_args[0][0]


class TestCreate:

    def test_form_encoded_entry(self, client, handler, verifier):
        response = client.post("/micropub", headers=AUTH, data={
            "h": "entry",
            "content": "Hello world",
            "category[]": ["indieweb", "micropub"],
            "mp-slug": "hello",
        })

        assert response.status_code == 201
        assert response.headers["Location"] == POST_URL
        assert response.get_json() == {"url": POST_URL}
        verifier.verify.assert_called_once_with("secret-token", required_scopes=CREATE_SCOPES)
        assert handled_document(handler) == {
            "type": ["h-entry"],
            "properties": {"content": ["Hello world"], "category": ["indieweb", "micropub"]},
            "mp": {"slug": ["hello"]},
        }

    def test_form_token_in_body(self, client, handler, verifier):
        response = client.post("/micropub", data={
            "h": "entry",
            "content": "Hello",
            "access_token": "body-token",
        })

        assert response.status_code == 201
        verifier.verify.assert_called_once_with("body-token", required_scopes=CREATE_SCOPES)
        assert "access_token" not in handled_document(handler)["properties"]

    def test_empty_values_are_dropped(self, client, handler):
        client.post("/micropub", headers=AUTH, data={"h": "entry", "content": "Hi", "name": ""})

        assert handled_document(handler)["properties"] == {"content": ["Hi"]}

    def test_multipart_photo(self, client, handler):
        response = client.post(
            "/micropub",
            headers=AUTH,
            content_type="multipart/form-data",
            data={
                "h": "entry",
                "content": "Look",
                "photo": (io.BytesIO(b"image-bytes"), "cat.jpg"),
            },
        )

        assert response.status_code == 201
        document = handled_document(handler)
        assert document["files"] == {"photo": [{"filename": "cat.jpg", "buffer": b"image-bytes"}]}
        assert "photo" not in document["properties"]

    def test_multipart_ignores_unknown_upload_fields(self, client, handler):
        client.post(
            "/micropub",
            headers=AUTH,
            content_type="multipart/form-data",
            data={"h": "entry", "content": "Look", "attachment": (io.BytesIO(b"x"), "x.bin")},
        )

        assert "files" not in handled_document(handler)

    def test_json_entry(self, client, handler):
        response = client.post("/micropub", headers=AUTH, json={
            "type": ["h-entry"],
            "properties": {
                "content": [{"html": "<p>Hello</p>"}],
                "mp-slug": ["hello"],
            },
        })

        assert response.status_code == 201
        assert handled_document(handler) == {
            "type": ["h-entry"],
            "properties": {"content": [{"html": "<p>Hello</p>"}]},
            "mp": {"slug": ["hello"]},
        }

    def test_json_schema_violation(self, client, handler):
        response = client.post("/micropub", headers=AUTH, json={"type": "h-entry", "properties": {}})

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_request"
        handler.handle.assert_not_called()

    def test_invalid_json_body(self, client, handler):
        response = client.post("/micropub", headers=AUTH, data="{not json", content_type="application/json")

        assert response.status_code == 400
        handler.handle.assert_not_called()

    def test_actions_are_not_supported(self, client, handler):
        response = client.post("/micropub", headers=AUTH, data={"action": "delete", "url": POST_URL})

        assert response.status_code == 400
        assert "delete" in response.get_json()["error_description"]
        handler.handle.assert_not_called()

    def test_token_in_header_and_body(self, client, handler):
        response = client.post("/micropub", headers=AUTH, data={
            "h": "entry",
            "content": "Hi",
            "access_token": "body-token",
        })

        assert response.status_code == 400
        handler.handle.assert_not_called()

    @pytest.mark.parametrize("error, status_code", [
        (TokenVerificationError("unauthorized", 401, "Missing access token"), 401),
        (TokenVerificationError("forbidden", 403, "Access token is not valid"), 403),
        (TokenVerificationError("insufficient_scope", 403, "Needs create scope"), 403),
    ])
    def test_token_errors(self, client, handler, verifier, error, status_code):
        verifier.verify.side_effect = error

        response = client.post("/micropub", headers=AUTH, data={"h": "entry", "content": "Hi"})

        assert response.status_code == status_code
        assert response.get_json() == {"error": error.error, "error_description": error.description}
        handler.handle.assert_not_called()

    @pytest.mark.parametrize("error, status_code, code", [
        (RejectedRequestError("Can't handle micropub document type [h-event]."), 400, "invalid_request"),
        (PersistenceError("disk full"), 500, "server_error"),
        (PublishError("Publish command failed"), 500, "server_error"),
        (RuntimeError("unexpected"), 500, "server_error"),
    ])
    def test_handler_errors(self, client, handler, error, status_code, code):
        handler.handle.side_effect = error

        response = client.post("/micropub", headers=AUTH, data={"h": "entry", "content": "Hi"})

        assert response.status_code == status_code
        assert response.get_json()["error"] == code
        assert "Location" not in response.headers


class TestQueries:

    def test_config_query(self, client):
        response = client.get("/micropub?q=config", headers=AUTH)

        assert response.status_code == 200
        assert response.get_json() == {}

    def test_syndicate_to_query(self, client):
        response = client.get("/micropub?q=syndicate-to", headers=AUTH)

        assert response.get_json() == {"syndicate-to": []}

    def test_unsupported_query(self, client):
        response = client.get("/micropub?q=source", headers=AUTH)

        assert response.status_code == 400

    def test_query_requires_token(self, client, verifier):
        verifier.verify.side_effect = TokenVerificationError("unauthorized", 401, "Missing access token")

        response = client.get("/micropub?q=config")

        assert response.status_code == 401
        verifier.verify.assert_called_once_with(None)

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy"}


class TestParseJsonDocument:

    def test_mp_object_is_kept(self):
        document = parse_json_document({
            "type": ["h-entry"],
            "properties": {"content": ["Hi"]},
            "mp": {"slug": ["hi"]},
        })

        assert document["mp"] == {"slug": ["hi"]}

    def test_update_action_is_rejected(self):
        with pytest.raises(MicropubRequestError, match="update"):
            parse_json_document({"action": "update", "url": POST_URL})

    def test_properties_must_be_lists(self):
        with pytest.raises(MicropubRequestError, match="Schema validation failed"):
            parse_json_document({"type": ["h-entry"], "properties": {"content": "Hi"}})


def token_response(status_code=200, json_data=None, content_type="application/json", text=""):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    response.text = text
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("No JSON")
    return response


class TestTokenVerifier:

    def make_verifier(self):
        return TokenVerifier(identity="https://example.com", token_endpoint="https://tokens.example/token", timeout=5.0)

    @patch("micropub.auth.requests.get")
    def test_valid_token(self, mock_get):
        mock_get.return_value = token_response(json_data={
            "me": "https://example.com/",
            "scope": "create update",
            "client_id": "https://app.example/",
        })

        info = self.make_verifier().verify("abc", required_scopes=CREATE_SCOPES)

        assert info["scope"] == "create update"
        call_args = mock_get.call_args
        assert call_args[0][0] == "https://tokens.example/token"
        assert call_args[1]["headers"]["Authorization"] == "Bearer abc"
        assert call_args[1]["timeout"] == 5.0

    @patch("micropub.auth.requests.get")
    def test_legacy_post_scope(self, mock_get):
        mock_get.return_value = token_response(json_data={"me": "https://example.com/", "scope": "post"})

        self.make_verifier().verify("abc", required_scopes=CREATE_SCOPES)

    @patch("micropub.auth.requests.get")
    def test_form_encoded_response(self, mock_get):
        mock_get.return_value = token_response(
            content_type="application/x-www-form-urlencoded",
            text="me=https%3A%2F%2Fexample.com%2F&scope=create",
        )

        info = self.make_verifier().verify("abc", required_scopes=CREATE_SCOPES)

        assert info["me"] == "https://example.com/"

    @patch("micropub.auth.requests.get")
    def test_missing_token(self, mock_get):
        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify(None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.error == "unauthorized"
        mock_get.assert_not_called()

    @patch("micropub.auth.requests.get")
    def test_rejected_token(self, mock_get):
        mock_get.return_value = token_response(status_code=401, json_data={"error": "unauthorized"})

        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify("abc")

        assert exc_info.value.status_code == 403
        assert exc_info.value.error == "forbidden"

    @patch("micropub.auth.requests.get")
    def test_other_identity(self, mock_get):
        mock_get.return_value = token_response(json_data={"me": "https://someone.else/", "scope": "create"})

        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify("abc")

        assert exc_info.value.error == "forbidden"

    @patch("micropub.auth.requests.get")
    def test_insufficient_scope(self, mock_get):
        mock_get.return_value = token_response(json_data={"me": "https://example.com/", "scope": "read"})

        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify("abc", required_scopes=CREATE_SCOPES)

        assert exc_info.value.error == "insufficient_scope"
        assert exc_info.value.status_code == 403

    @patch("micropub.auth.requests.get")
    def test_scope_not_checked_for_queries(self, mock_get):
        mock_get.return_value = token_response(json_data={"me": "https://example.com", "scope": "read"})

        assert self.make_verifier().verify("abc")["scope"] == "read"

    @patch("micropub.auth.requests.get")
    def test_unreachable_endpoint(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify("abc")

        assert exc_info.value.status_code == 403
        assert isinstance(exc_info.value.__cause__, requests.exceptions.ConnectionError)

    @patch("micropub.auth.requests.get")
    def test_non_json_response(self, mock_get):
        mock_get.return_value = token_response(content_type="text/html", text="<html></html>")

        with pytest.raises(TokenVerificationError) as exc_info:
            self.make_verifier().verify("abc")

        assert exc_info.value.error == "forbidden"

    def test_from_config(self, config):
        config["site"]["indieauth"]["identity"] = "https://me.example/"
        config["webmention"]["timeout"] = 7.5

        verifier = TokenVerifier.from_config(config)

        assert verifier.identity == "https://me.example/"
        assert verifier.token_endpoint == "https://tokens.indieauth.com/token"
        assert verifier.timeout == 7.5
