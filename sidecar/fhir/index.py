"""
Index of available AI report artifacts, built from DocumentReference entries.

Shape: model -> image label -> ArtifactRecord.

Each DocumentReference carries three identifiers (model, image label, raw
binary id) and a list of attachments. The first PNG attachment is the AI
summary image, the first PDF attachment is the AI report document.

The first record seen for a (model, image label) key wins. Which record is
"first" depends on the repository's result order, which FHIR servers do
not guarantee; see DESIGN.md.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from api.models import ArtifactRecord

logger = logging.getLogger(__name__)

MODEL_SYSTEM = "https://cch.org.tw/fhir/larynx-demo/model"
IMAGE_LABEL_SYSTEM = "https://cch.org.tw/fhir/larynx-demo/image-label"
RAW_BINARY_SYSTEM = "https://cch.org.tw/fhir/larynx-demo/raw-binary-id"


class DocumentIndex:
    """Two-level mapping of indexed records. Read-only once built."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, ArtifactRecord]] = {}

    def insert_if_absent(self, record: ArtifactRecord) -> bool:
        """Insert record unless its key is already present. Returns True if inserted."""
        labels = self._records.setdefault(record.model, {})
        if record.image_label in labels:
            return False
        labels[record.image_label] = record
        return True

    def models(self) -> list[str]:
        return sorted(self._records)

    def image_labels(self, model: str) -> list[str]:
        return sorted(self._records.get(model, {}))

    def get(self, model: str, image_label: str) -> Optional[ArtifactRecord]:
        return self._records.get(model, {}).get(image_label)

    @property
    def is_empty(self) -> bool:
        return not self._records

    def __contains__(self, key: object) -> bool:
        if isinstance(key, tuple) and len(key) == 2:
            return self.get(*key) is not None
        return key in self._records

    def __len__(self) -> int:
        return sum(len(labels) for labels in self._records.values())

    def to_dict(self) -> dict[str, dict[str, dict]]:
        return {
            model: {label: record.model_dump() for label, record in labels.items()}
            for model, labels in self._records.items()
        }


def identifier_value(resource: dict, system: str) -> Optional[str]:
    """Return the value of the first identifier with the given system."""
    for ident in resource.get("identifier") or []:
        if isinstance(ident, dict) and ident.get("system") == system:
            return ident.get("value")
    return None


def binary_id_from_url(url: Optional[str]) -> Optional[str]:
    """The binary id is the trailing path segment of an attachment URL."""
    if not url:
        return None
    return url.split("/")[-1]


def _classify_attachments(contents: list) -> tuple[Optional[str], Optional[str]]:
    png_id: Optional[str] = None
    pdf_id: Optional[str] = None
    for content in contents:
        if not isinstance(content, dict):
            continue
        attachment = content.get("attachment") or content
        if not isinstance(attachment, dict) or not attachment.get("url"):
            continue
        content_type = attachment.get("contentType") or ""
        if "png" in content_type:
            if png_id is None:
                png_id = binary_id_from_url(attachment["url"])
        elif "pdf" in content_type:
            if pdf_id is None:
                pdf_id = binary_id_from_url(attachment["url"])
    return png_id, pdf_id


def parse_entry(entry: dict) -> Optional[ArtifactRecord]:
    """Turn one bundle entry into a record, or None if it is not indexable."""
    resource = entry.get("resource")
    if not isinstance(resource, dict) or resource.get("resourceType") != "DocumentReference":
        return None

    model = identifier_value(resource, MODEL_SYSTEM)
    image_label = identifier_value(resource, IMAGE_LABEL_SYSTEM)
    if not model or not image_label:
        return None

    png_id, pdf_id = _classify_attachments(resource.get("content") or [])
    return ArtifactRecord(
        model=model,
        image_label=image_label,
        raw_binary_id=identifier_value(resource, RAW_BINARY_SYSTEM),
        summary_image_binary_id=png_id,
        report_document_binary_id=pdf_id,
    )


def build_document_index(entries: Iterable[dict]) -> DocumentIndex:
    """Build the index from search entries in their original order."""
    index = DocumentIndex()
    skipped = 0
    duplicates = 0
    for entry in entries:
        record = parse_entry(entry) if isinstance(entry, dict) else None
        if record is None:
            skipped += 1
            continue
        if not index.insert_if_absent(record):
            duplicates += 1
            logger.debug(
                "Ignoring duplicate record for model=%s image=%s",
                record.model, record.image_label,
            )

    logger.info(
        "Indexed %d records across %d models (%d skipped, %d duplicates)",
        len(index), len(index.models()), skipped, duplicates,
    )
    return index
