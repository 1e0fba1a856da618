"""Schema Package - JSON Schema Loading.

This package provides centralized loading of the JSON schemas used by
microstat to validate inbound data.

Schemas are stored as JSON files next to this package, loaded once at
import time and exposed as module-level constants.

Available Schemas:
    MICROPUB_DOCUMENT_SCHEMA: JSON Schema for Micropub create requests sent
        as application/json (``{"type": [...], "properties": {...}}``).

Usage:
    from schema import MICROPUB_DOCUMENT_SCHEMA
    validate(instance=document, schema=MICROPUB_DOCUMENT_SCHEMA)
"""
from .schema import MICROPUB_DOCUMENT_SCHEMA

__all__ = ["MICROPUB_DOCUMENT_SCHEMA"]
