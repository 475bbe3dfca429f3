import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.audit import AuditMiddleware
from api.middleware import add_cors_middleware
from api.models import AppSettings
from api.routes import router
from api.settings_store import get_settings
from server import resolve_port, start_server
from session import ReportSession

_logger = logging.getLogger(__name__)

# Patient identifiers that can end up in exception text or breadcrumbs
_PHI_PATTERNS = [
    re.compile(r"\b[0-9a-f]{64}\b"),                                   # SHA-256 of a clinical image
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),                              # ISO dates (exam date)
    re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"),                   # dates
    re.compile(r"(?i)patient_?name['\"]?\s*[:=]\s*['\"]?[^\n,;'\"]{1,60}"),  # labeled patient name
    re.compile(r"(?i)patient_?age['\"]?\s*[:=]\s*['\"]?\d{1,3}"),       # labeled age
]


def _scrub_phi(text: str) -> str:
    for pattern in _PHI_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def _init_sentry(settings: AppSettings) -> None:
    if not settings.sentry_dsn:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.starlette import StarletteIntegration
    except ImportError:
        _logger.warning("SENTRY_DSN is set but sentry-sdk is not installed")
        return

    def before_send(event, hint):
        if "exception" in event:
            for exc_info in event["exception"].get("values", []):
                if exc_info.get("value"):
                    exc_info["value"] = _scrub_phi(exc_info["value"])
        for bc in event.get("breadcrumbs", {}).get("values", []):
            if bc.get("message"):
                bc["message"] = _scrub_phi(bc["message"])
        return event

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        integrations=[FastApiIntegration(), StarletteIntegration()],
        before_send=before_send,
        send_default_pii=False,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    session: Optional[ReportSession] = None,
) -> FastAPI:
    """Build the app. Pass a prepared session to bypass construction from settings."""
    settings = settings or get_settings()
    _init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Own the report session: build the index on startup, release handles on shutdown."""
        active = session or ReportSession.from_settings(settings)
        status = await active.init_session()
        _logger.info("Report session initialised: %s", status.value)
        if not settings.infer_api_base:
            _logger.warning("INFER_API_BASE is not set; lookups will use repository attachments")
        app.state.session = active
        try:
            yield
        finally:
            app.state.session = None
            await active.teardown_session()

    app = FastAPI(title="Larynx AI Report Sidecar", version="1.0", lifespan=lifespan)
    app.add_middleware(AuditMiddleware)
    add_cors_middleware(app, settings.allowed_origins)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error."},
        )

    app.include_router(router)
    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    app = create_app(settings)
    start_server(app, settings.host, resolve_port(settings.port))
