"""
Session controller: owns the report index, the current submission and all
display handles for one running sidecar.

Lifecycle: init_session() once at startup, teardown_session() at shutdown.
A submission runs strictly in order raw fetch -> hash -> resolve -> output
fetches. Overlapping submissions are not serialized: a late response from
an older submission can overwrite newer state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from api.models import (
    AppSettings,
    ArtifactRecord,
    LoadStatus,
    ResolutionState,
    ResolvedArtifacts,
    SessionStatusResponse,
    Slot,
    SubmitRequest,
)
from errors import HashUnavailable, InvalidSelection, NothingToCompose, SidecarError
from fhir import DocumentIndex, FhirClient, build_document_index
from inference.client import InferenceClient
from inference.hashing import sha256_hex
from inference.resolver import InferenceResolver
from report import (
    CombinedReport,
    DisplayHandle,
    HandleArena,
    PymupdfPageRenderer,
    ReportComposer,
    ReportView,
    ReportViewRenderer,
)

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    LoadStatus.LOADING: "Loading demo AI reports from THAS...",
    LoadStatus.READY: "Demo AI reports loaded. Please select model and test image.",
    LoadStatus.EMPTY: "No demo AI reports found in THAS (DocumentReference).",
    LoadStatus.MISSING_IDENTIFIERS: "Demo DocumentReference found, but missing identifiers.",
    LoadStatus.FAILED: "Failed to load demo AI reports from THAS.",
}

SUBMISSION_ERROR_MESSAGE = "Error loading images/reports from THAS."


@dataclass
class SubmissionResult:
    request: SubmitRequest
    record: ArtifactRecord
    resolved: ResolvedArtifacts
    sha256: Optional[str] = None
    raw_image: Optional[DisplayHandle] = None
    summary_image: Optional[DisplayHandle] = None
    report_document: Optional[DisplayHandle] = None


class ReportSession:
    def __init__(
        self,
        settings: AppSettings,
        fhir_client: FhirClient,
        inference_client: InferenceClient,
        composer: Optional[ReportComposer] = None,
    ):
        self.settings = settings
        self.fhir = fhir_client
        self.inference_client = inference_client
        self.resolver = InferenceResolver(inference_client)
        self.composer = composer or ReportComposer(ReportViewRenderer(), PymupdfPageRenderer())
        self.handles = HandleArena()
        self.index = DocumentIndex()
        self.status = LoadStatus.LOADING
        self.current: Optional[SubmissionResult] = None
        self._document_bytes: Optional[bytes] = None

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ReportSession":
        fhir_client = FhirClient(
            settings.fhir_base_url,
            access_token=settings.fhir_access_token,
            timeout=settings.http_timeout_seconds,
        )
        return cls(settings, fhir_client, InferenceClient(settings))

    # --- lifecycle ---

    async def init_session(self) -> LoadStatus:
        """Search the repository and build the report index."""
        self.status = LoadStatus.LOADING
        try:
            entries = await self.fhir.search_document_references(
                self.settings.fhir_category_system,
                self.settings.fhir_category_code,
                count=self.settings.fhir_search_count,
                max_pages=self.settings.fhir_search_max_pages,
            )
        except SidecarError:
            logger.exception("DocumentReference search failed")
            self.status = LoadStatus.FAILED
            return self.status

        if not entries:
            self.status = LoadStatus.EMPTY
            return self.status

        self.index = build_document_index(entries)
        self.status = LoadStatus.MISSING_IDENTIFIERS if self.index.is_empty else LoadStatus.READY
        return self.status

    async def teardown_session(self) -> None:
        self.handles.release_all()
        self.current = None
        self._document_bytes = None
        await self.fhir.aclose()
        await self.inference_client.aclose()

    def status_response(self) -> SessionStatusResponse:
        return SessionStatusResponse(
            status=self.status,
            message=_STATUS_MESSAGES[self.status],
            model_count=len(self.index.models()),
            record_count=len(self.index),
        )

    # --- selection ---

    def models(self) -> list[str]:
        return self.index.models()

    def image_labels(self, model: str) -> list[str]:
        return self.index.image_labels(model)

    # --- submission ---

    def _clear_display(self) -> None:
        for slot in Slot:
            self.handles.release(slot)
        self._document_bytes = None
        self.current = None

    async def submit(self, request: SubmitRequest) -> SubmissionResult:
        """Load the raw image, resolve predicted outputs and load them.

        Raises InvalidSelection for an unindexed pair, and NotFound or
        TransportError when the repository fails; display slots are already
        cleared at that point.
        """
        record = self.index.get(request.model, request.image_label)
        if record is None:
            raise InvalidSelection("Selected combination has no demo report. Please re-select.")

        self._clear_display()

        raw_handle: Optional[DisplayHandle] = None
        digest: Optional[str] = None
        if record.raw_binary_id:
            raw = await self.fhir.fetch_binary(record.raw_binary_id)
            if raw:
                raw_handle = self.handles.replace(Slot.RAW_IMAGE, raw.data, raw.content_type)
                try:
                    digest = await sha256_hex(raw.data)
                except HashUnavailable as exc:
                    logger.warning("SHA-256 unavailable; resolving without a digest: %s", exc)
                    digest = None

        resolved = await self.resolver.resolve(
            request.model, record.raw_binary_id, digest, request.image_label, record,
        )
        if resolved.state == ResolutionState.REMOTE_FAILED_FALLBACK_USED:
            logger.info("Using repository attachments for %s/%s", record.model, record.image_label)

        result = SubmissionResult(
            request=request,
            record=record,
            resolved=resolved,
            sha256=digest,
            raw_image=raw_handle,
        )
        self.current = result

        if resolved.summary_image_binary_id:
            png = await self.fhir.fetch_binary(
                resolved.summary_image_binary_id, default_content_type="image/png",
            )
            if png:
                result.summary_image = self.handles.replace(
                    Slot.SUMMARY_IMAGE, png.data, png.content_type,
                )

        if resolved.report_document_binary_id:
            pdf = await self.fhir.fetch_binary(
                resolved.report_document_binary_id, default_content_type="application/pdf",
            )
            if pdf:
                self._document_bytes = pdf.data
                result.report_document = self.handles.replace(
                    Slot.REPORT_DOCUMENT, pdf.data, pdf.content_type,
                )

        return result

    # --- combined report ---

    def _current_view(self) -> ReportView:
        result = self.current
        raw = self.handles.current(Slot.RAW_IMAGE)
        summary = self.handles.current(Slot.SUMMARY_IMAGE)
        return ReportView(
            model=result.request.model,
            image_label=result.request.image_label,
            patient_name=result.request.patient_name,
            patient_sex=result.request.patient_sex,
            patient_age=result.request.patient_age,
            exam_date=result.request.exam_date,
            run_id=result.resolved.run_id,
            sha256=result.sha256,
            raw_image=raw.data if raw else None,
            summary_image=summary.data if summary else None,
        )

    async def build_report(self) -> tuple[CombinedReport, DisplayHandle]:
        """Compose the combined PDF and install it as the preview handle."""
        if self.current is None:
            raise NothingToCompose("Submit first to generate the AI Analysis Report.")
        if not self._document_bytes:
            raise NothingToCompose(
                "There is no AI Report (PDF) to attach. Submit again and make sure the PDF is loaded."
            )

        self.handles.release(Slot.COMBINED_REPORT)
        report = await self.composer.compose(self._current_view(), self._document_bytes)
        handle = self.handles.replace(
            Slot.COMBINED_REPORT, report.data, report.content_type, filename=report.filename,
        )
        return report, handle

    def download(self) -> Optional[DisplayHandle]:
        return self.handles.current(Slot.COMBINED_REPORT)
