"""Micropub Endpoint Package.

This package provides the Flask-based Micropub endpoint that accepts
authenticated create requests and publishes them as static-site posts.

Key Components:
    create_app: Flask application factory
    TokenVerifier: IndieAuth bearer token verification

Endpoints:
    POST /micropub: Create a post
    GET /micropub?q=config|syndicate-to: Micropub queries
    GET /health: Health check endpoint for monitoring

Usage:
    Test with curl:
        $ curl -X POST http://localhost:5000/micropub \
               -H "Authorization: Bearer $TOKEN" \
               -d h=entry -d "content=Hello world" -d "category[]=indieweb"
"""
from .micropub import create_app
from .auth import TokenVerifier, TokenVerificationError

__all__ = ["create_app", "TokenVerifier", "TokenVerificationError"]
