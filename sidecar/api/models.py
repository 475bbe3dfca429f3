from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ResolutionState(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    REMOTE_SUCCEEDED = "remote_succeeded"
    REMOTE_FAILED_FALLBACK_USED = "remote_failed_fallback_used"
    NO_IDENTIFIERS_FALLBACK_USED = "no_identifiers_fallback_used"


class LoadStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    MISSING_IDENTIFIERS = "missing_identifiers"
    FAILED = "failed"


class Slot(str, Enum):
    RAW_IMAGE = "raw_image"
    SUMMARY_IMAGE = "summary_image"
    REPORT_DOCUMENT = "report_document"
    COMBINED_REPORT = "combined_report"


class ArtifactRecord(BaseModel):
    """One indexed report: keyed by (model, image_label), immutable once built."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    image_label: str
    raw_binary_id: Optional[str] = None
    summary_image_binary_id: Optional[str] = None
    report_document_binary_id: Optional[str] = None


class ResolvedArtifacts(BaseModel):
    run_id: Optional[str] = None
    summary_image_binary_id: Optional[str] = None
    report_document_binary_id: Optional[str] = None
    state: ResolutionState = ResolutionState.NOT_ATTEMPTED


class AppSettings(BaseModel):
    fhir_base_url: str = "http://localhost:8080/fhir"
    fhir_access_token: Optional[str] = None
    fhir_category_system: str = "https://cch.org.tw/fhir/CodeSystem/larynx-demo-category"
    fhir_category_code: str = "larynx-ai-report"
    fhir_search_count: int = Field(default=50, ge=1, le=1000)
    fhir_search_max_pages: int = Field(default=1, ge=1, le=100)
    infer_api_base: Optional[str] = None
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    host: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"


# --- Requests ---


class SubmitRequest(BaseModel):
    """Request body for POST /submit."""

    model_config = ConfigDict(protected_namespaces=())

    model: str
    image_label: str
    patient_name: str = ""
    patient_sex: str = ""
    patient_age: str = ""
    exam_date: str = ""


# --- Responses ---


class SessionStatusResponse(BaseModel):
    status: LoadStatus
    message: str
    model_count: int = 0
    record_count: int = 0


class HandleInfo(BaseModel):
    handle_id: str
    url: str
    content_type: str


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model: str
    image_label: str
    patient_name: str
    patient_sex_age: str
    exam_date: str
    run_id: Optional[str] = None
    sha256: Optional[str] = None
    resolution_state: ResolutionState
    raw_image: Optional[HandleInfo] = None
    summary_image: Optional[HandleInfo] = None
    report_document: Optional[HandleInfo] = None


class ReportPreviewResponse(BaseModel):
    title: str
    filename: str
    page_count: int
    preview: HandleInfo
    download_url: str = "/report/download"
