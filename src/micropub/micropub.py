"""
Micropub Endpoint - Flask Application.

This module implements the Micropub endpoint: it accepts authenticated
Micropub create requests, converts them into Micropub documents, and hands
them to the publishing pipeline.

Architecture:
    1. Extract the bearer token (Authorization header or access_token field)
    2. Verify it against the IndieAuth token endpoint
    3. Parse the request body into a Micropub document:
       - application/json: validated against the Micropub document schema
       - application/x-www-form-urlencoded / multipart/form-data:
         ``h=entry`` becomes ``type: ["h-entry"]``, ``key[]`` and repeated
         keys become lists, ``mp-*`` fields become commands, uploads under
         photo/video/audio become files
    4. Run the RequestHandler
    5. Answer 201 Created with a Location header

Endpoints:
    POST /micropub: Create a post
    GET /micropub?q=config: Micropub configuration query (empty)
    GET /micropub?q=syndicate-to: Syndication targets (none)
    GET /health: Health check endpoint for monitoring

Error Handling:
    Errors use Micropub's JSON error format
    (``{"error": ..., "error_description": ...}``):
    - 400 invalid_request: malformed or unsupported request
    - 401 unauthorized: no access token
    - 403 forbidden / insufficient_scope: token rejected
    - 500 server_error: writing or publishing failed
"""
import logging
from typing import Any, Dict, Optional

from flask import Flask, request, jsonify, current_app
from flask_cors import CORS
from jsonschema import validate, ValidationError

from config import load_config
from micropub.auth import CREATE_SCOPES, TokenVerificationError, TokenVerifier
from publishing import PersistenceError, PublishError, RejectedRequestError, RequestHandler
from schema import MICROPUB_DOCUMENT_SCHEMA

# Logging is configured in microstat.py main() - this module uses the configured logger
logger = logging.getLogger(__name__)

MEDIA_FIELDS = ("photo", "video", "audio")
RESERVED_FIELDS = ("h", "access_token", "action")


class MicropubRequestError(Exception):
    """Raised when a Micropub request can't be parsed into a document."""


def _error(error: str, description: str, status_code: int):
    return jsonify({"error": error, "error_description": description}), status_code


def _field_name(key: str) -> str:
    return key[:-2] if key.endswith("[]") else key


def extract_access_token() -> Optional[str]:
    """Return the bearer token from the request.

    Raises:
        MicropubRequestError: If the token is sent both in the header and the body
    """
    header = request.headers.get("Authorization", "")
    header_token = header[7:].strip() if header.lower().startswith("bearer ") else None
    body_token = request.form.get("access_token") if request.form else None

    if header_token and body_token:
        raise MicropubRequestError("Access token must not be sent in both the header and the body")
    return header_token or body_token


def parse_json_document(payload: Any) -> Dict[str, Any]:
    """Validate a JSON Micropub request and return its document.

    Raises:
        MicropubRequestError: If the payload isn't a Micropub create request
    """
    if isinstance(payload, dict) and "action" in payload:
        raise MicropubRequestError(f"Micropub action [{payload['action']}] is not supported")
    try:
        validate(instance=payload, schema=MICROPUB_DOCUMENT_SCHEMA)
    except ValidationError as e:
        path_str = ".".join(str(p) for p in e.path)
        raise MicropubRequestError(f"Schema validation failed: {e.message} at path: {path_str}") from e

    document = {"type": list(payload["type"]), "properties": dict(payload["properties"])}
    if payload.get("mp"):
        document["mp"] = dict(payload["mp"])
    # JSON commands may also be sent as mp-* properties
    for name in list(document["properties"]):
        if name.startswith("mp-"):
            document.setdefault("mp", {})[name[3:]] = document["properties"].pop(name)
    return document


def parse_form_document(form, files) -> Dict[str, Any]:
    """Convert form-encoded or multipart Micropub fields into a document.

    Raises:
        MicropubRequestError: If the request isn't a create request
    """
    if form.get("action"):
        raise MicropubRequestError(f"Micropub action [{form.get('action')}] is not supported")

    h = form.get("h") or "entry"
    properties: Dict[str, list] = {}
    mp: Dict[str, list] = {}

    for key in form.keys():
        name = _field_name(key)
        if name in RESERVED_FIELDS:
            continue
        values = [v for v in form.getlist(key) if v != ""]
        if not values:
            continue
        if name.startswith("mp-"):
            mp.setdefault(name[3:], []).extend(values)
        else:
            properties.setdefault(name, []).extend(values)

    uploads: Dict[str, list] = {}
    for key in files.keys():
        name = _field_name(key)
        if name not in MEDIA_FIELDS:
            logger.warning(f"Ignoring upload in unsupported field: {key}")
            continue
        for storage in files.getlist(key):
            if not storage or not storage.filename:
                continue
            uploads.setdefault(name, []).append({"filename": storage.filename, "buffer": storage.read()})

    document: Dict[str, Any] = {"type": [f"h-{h}"], "properties": properties}
    if mp:
        document["mp"] = mp
    if uploads:
        document["files"] = uploads
    return document


def create_app(handler: Optional[RequestHandler] = None, config: Optional[Dict[str, Any]] = None,
               verifier: Optional[TokenVerifier] = None) -> Flask:
    """Factory function to create and configure the Flask application.

    Args:
        handler: RequestHandler that publishes posts (if None, built from config)
        config: Optional configuration dictionary (if None, loaded from config.yml)
        verifier: TokenVerifier for access tokens (if None, built from config)

    Returns:
        Configured Flask application instance

    Example:
        >>> app = create_app(config=load_config())
        >>> # Use app with test client or run with Gunicorn
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()

    cors_config = config.get("cors", {})
    if cors_config.get("enabled", False):
        cors_origins = cors_config.get("origins", [])
        if cors_origins:
            CORS(app, origins=cors_origins)
            logger.info(f"CORS enabled for origins: {cors_origins}")
        else:
            logger.warning("CORS enabled but no origins configured")
    else:
        logger.info("CORS is disabled in configuration")

    app.config["REQUEST_HANDLER"] = handler or RequestHandler.from_config(config)
    app.config["TOKEN_VERIFIER"] = verifier or TokenVerifier.from_config(config)

    @app.route("/micropub", methods=["GET"])
    def micropub_query():
        """Answer Micropub queries.

        Only ``q=config`` and ``q=syndicate-to`` are supported; this endpoint
        doesn't serve post sources.
        """
        verifier = current_app.config["TOKEN_VERIFIER"]
        try:
            verifier.verify(extract_access_token())
        except MicropubRequestError as e:
            return _error("invalid_request", str(e), 400)
        except TokenVerificationError as e:
            return _error(e.error, e.description, e.status_code)

        query = request.args.get("q")
        if query == "config":
            return jsonify({}), 200
        if query == "syndicate-to":
            return jsonify({"syndicate-to": []}), 200
        return _error("invalid_request", f"Unsupported query [{query}]", 400)

    @app.route("/micropub", methods=["POST"])
    def micropub_create():
        """Create a post from a Micropub request.

        Success Response (201):
            Location: <post url>
            {"url": "<post url>"}
        """
        handler = current_app.config["REQUEST_HANDLER"]
        verifier = current_app.config["TOKEN_VERIFIER"]

        try:
            verifier.verify(extract_access_token(), required_scopes=CREATE_SCOPES)

            if request.is_json:
                payload = request.get_json(silent=True)
                if payload is None:
                    raise MicropubRequestError("Request body is not valid JSON")
                document = parse_json_document(payload)
            else:
                document = parse_form_document(request.form, request.files)

            logger.info(f"Received Micropub request: type={document['type']}, properties={sorted(document['properties'])}")
            publication = handler.handle(document)

        except MicropubRequestError as e:
            logger.error(f"Invalid Micropub request: {e}")
            return _error("invalid_request", str(e), 400)
        except TokenVerificationError as e:
            logger.warning(f"Micropub request not authorized: {e.description}")
            return _error(e.error, e.description, e.status_code)
        except RejectedRequestError as e:
            logger.error(f"Rejected Micropub request: {e}")
            return _error("invalid_request", str(e), 400)
        except (PersistenceError, PublishError) as e:
            logger.error(f"Couldn't publish post: {e}")
            return _error("server_error", str(e), 500)
        except Exception as e:
            logger.error(f"Unexpected error processing Micropub request: {str(e)}", exc_info=True)
            return _error("server_error", "Internal server error", 500)

        response = jsonify(publication.to_response())
        response.status_code = 201
        response.headers["Location"] = publication.url
        return response

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint for monitoring and load balancers."""
        return jsonify({"status": "healthy"}), 200

    return app
