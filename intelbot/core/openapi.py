"""OpenAPI metadata and customization utilities.

Enriches the generated schema with tag descriptions and the ``X-API-Key``
security scheme. Only the manual trigger routes require the key; health,
status and webhook routes are marked ``security: []``.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

API_KEY_PATH_PREFIX = "/api/trigger/"

TAGS = [
    {"name": "Webhooks", "description": "Signed GitHub App event deliveries."},
    {"name": "Triggers", "description": "On-demand analysis for one repository (requires X-API-Key)."},
    {"name": "Status", "description": "Aggregated integration health and scheduled task state."},
    {"name": "Health", "description": "Liveness check."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            security = [{"ApiKeyAuth": []}] if path.startswith(API_KEY_PATH_PREFIX) else []
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = security

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
