"""
Runtime settings loaded from environment variables.

Public API: get_settings, inference_base_url. The inference endpoint is read
through inference_base_url so a missing or placeholder value is reported
as a ConfigurationError instead of a silent downgrade.
"""

from __future__ import annotations

import os

from api.models import AppSettings
from errors import ConfigurationError

# Placeholder left in deployment templates; treated the same as unset.
_INFER_PLACEHOLDER = "YOUR_PUBLIC_INFER_API"


def _split_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["*"]


def get_settings() -> AppSettings:
    """Return current settings (loaded fresh from the environment)."""
    env = os.environ
    data: dict = {
        "fhir_base_url": env.get("FHIR_BASE_URL", "http://localhost:8080/fhir"),
        "fhir_access_token": env.get("FHIR_ACCESS_TOKEN") or None,
        "infer_api_base": env.get("INFER_API_BASE") or None,
        "allowed_origins": _split_origins(env.get("ALLOWED_ORIGINS", "")),
        "host": env.get("SIDECAR_HOST", "127.0.0.1"),
        "sentry_dsn": env.get("SENTRY_DSN") or None,
        "sentry_environment": env.get("SENTRY_ENVIRONMENT", "development"),
    }
    if "FHIR_CATEGORY_SYSTEM" in env:
        data["fhir_category_system"] = env["FHIR_CATEGORY_SYSTEM"]
    if "FHIR_CATEGORY_CODE" in env:
        data["fhir_category_code"] = env["FHIR_CATEGORY_CODE"]
    if "FHIR_SEARCH_COUNT" in env:
        data["fhir_search_count"] = int(env["FHIR_SEARCH_COUNT"])
    if "FHIR_SEARCH_MAX_PAGES" in env:
        data["fhir_search_max_pages"] = int(env["FHIR_SEARCH_MAX_PAGES"])
    if "HTTP_TIMEOUT_SECONDS" in env:
        data["http_timeout_seconds"] = float(env["HTTP_TIMEOUT_SECONDS"])
    if "SIDECAR_PORT" in env:
        data["port"] = int(env["SIDECAR_PORT"])
    return AppSettings(**data)


def inference_base_url(settings: AppSettings) -> str:
    """Return the inference base URL without trailing slashes.

    Raises ConfigurationError when it is unset or still the template placeholder.
    """
    base = (settings.infer_api_base or "").strip()
    if not base or _INFER_PLACEHOLDER in base:
        raise ConfigurationError("INFER_API_BASE is not set")
    return base.rstrip("/")
