"""
Lookup-with-fallback resolution of predicted output artifacts.

A single linear decision, terminal after one hop:

    no raw id and no digest  -> NO_IDENTIFIERS_FALLBACK_USED (run id "N/A")
    remote lookup succeeded  -> REMOTE_SUCCEEDED
    remote lookup failed     -> REMOTE_FAILED_FALLBACK_USED (run id "N/A (fallback)")

There is no retry. resolve() never raises; when nothing is resolvable the
artifact ids are simply None.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from api.models import ArtifactRecord, ResolutionState, ResolvedArtifacts
from errors import ConfigurationError, ResolutionFallback
from inference.client import InferenceClient

logger = logging.getLogger(__name__)

RUN_ID_NOT_ATTEMPTED = "N/A"
RUN_ID_FALLBACK = "N/A (fallback)"

# Accept camelCase and snake_case, under both the current and the legacy
# service field names.
_RUN_ID_FIELDS = ("runId", "run_id")
_SUMMARY_IMAGE_FIELDS = (
    "summaryImageBinaryId", "summary_image_binary_id", "pngBinaryId", "png_binary_id",
)
_REPORT_DOCUMENT_FIELDS = (
    "reportDocumentBinaryId", "report_document_binary_id", "pdfBinaryId", "pdf_binary_id",
)


def _first_field(body: dict[str, Any], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = body.get(name)
        if value:
            return str(value)
    return None


class InferenceResolver:
    def __init__(self, client: InferenceClient):
        self.client = client

    async def resolve(
        self,
        model: str,
        raw_binary_id: Optional[str],
        digest: Optional[str],
        image_label: str,
        fallback: ArtifactRecord,
    ) -> ResolvedArtifacts:
        if not raw_binary_id and not digest:
            return ResolvedArtifacts(
                run_id=RUN_ID_NOT_ATTEMPTED,
                summary_image_binary_id=fallback.summary_image_binary_id,
                report_document_binary_id=fallback.report_document_binary_id,
                state=ResolutionState.NO_IDENTIFIERS_FALLBACK_USED,
            )

        try:
            body = await self._lookup(model, raw_binary_id, digest, image_label)
        except ResolutionFallback as exc:
            logger.warning(
                "Inference lookup failed for model=%s image=%s; using repository attachments: %s",
                model, image_label, exc,
            )
            return ResolvedArtifacts(
                run_id=RUN_ID_FALLBACK,
                summary_image_binary_id=fallback.summary_image_binary_id,
                report_document_binary_id=fallback.report_document_binary_id,
                state=ResolutionState.REMOTE_FAILED_FALLBACK_USED,
            )

        return ResolvedArtifacts(
            run_id=_first_field(body, _RUN_ID_FIELDS),
            summary_image_binary_id=_first_field(body, _SUMMARY_IMAGE_FIELDS),
            report_document_binary_id=_first_field(body, _REPORT_DOCUMENT_FIELDS),
            state=ResolutionState.REMOTE_SUCCEEDED,
        )

    async def _lookup(
        self,
        model: str,
        raw_binary_id: Optional[str],
        digest: Optional[str],
        image_label: str,
    ) -> dict[str, Any]:
        """Run the remote call, folding every failure into ResolutionFallback."""
        try:
            return await self.client.predict(
                model, image_label, raw_binary_id=raw_binary_id, sha256=digest,
            )
        except ConfigurationError as exc:
            logger.error("Inference endpoint is not configured: %s", exc)
            raise ResolutionFallback(str(exc)) from exc
        except Exception as exc:
            raise ResolutionFallback(str(exc)) from exc
