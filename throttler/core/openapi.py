"""OpenAPI customizations.

Adds the ``X-API-Key`` security scheme and attaches it only to the admin
operations (stats, reset, per-API-key quotas). Traffic-class checks and
health endpoints stay unauthenticated.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {"name": "Limits", "description": "Rate limit checks and limiter administration."},
    {"name": "API keys", "description": "Per-API-key request quotas and concurrent job slots."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]


def _is_admin_path(path: str) -> bool:
    return path.endswith("/stats") or "/identifiers/" in path or "/api-keys/" in path


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with tags and the admin security scheme."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key for stats and reset endpoints.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in existing)

        for path, methods in schema.get("paths", {}).items():
            if not _is_admin_path(path):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = [{"ApiKeyAuth": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
