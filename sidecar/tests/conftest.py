"""Shared fixtures: fabricated PDFs/PNGs and fake FHIR / inference services."""

import base64
import io
import json

import fitz
import httpx
import pytest
from PIL import Image

from api.models import AppSettings
from fhir.client import FhirClient
from fhir.index import IMAGE_LABEL_SYSTEM, MODEL_SYSTEM, RAW_BINARY_SYSTEM
from inference.client import InferenceClient
from session import ReportSession

FHIR_BASE = "http://fhir.test/fhir"
INFER_BASE = "http://infer.test"


def _make_pdf(pages: int = 3) -> bytes:
    doc = fitz.open()
    for n in range(pages):
        page = doc.new_page(width=595, height=842)
        page.insert_text((72, 72), f"AI report page {n + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def _make_png(size=(64, 48), color=(200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def document_reference(model=None, label=None, raw=None, attachments=()) -> dict:
    identifiers = []
    if model is not None:
        identifiers.append({"system": MODEL_SYSTEM, "value": model})
    if label is not None:
        identifiers.append({"system": IMAGE_LABEL_SYSTEM, "value": label})
    if raw is not None:
        identifiers.append({"system": RAW_BINARY_SYSTEM, "value": raw})
    return {
        "resource": {
            "resourceType": "DocumentReference",
            "identifier": identifiers,
            "content": [
                {"attachment": {"contentType": ct, "url": f"{FHIR_BASE}/Binary/{bid}"}}
                for ct, bid in attachments
            ],
        }
    }


class FakeRepository:
    """In-memory FHIR server answering DocumentReference search and Binary reads."""

    def __init__(self):
        self.entries: list[dict] = []
        self.binaries: dict[str, tuple[str, bytes]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_search = False

    def add_binary(self, binary_id: str, content_type: str, data: bytes) -> None:
        self.binaries[binary_id] = (content_type, data)

    def binary_reads(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests if "/Binary/" in r.url.path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/DocumentReference"):
            if self.fail_search:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": self.entries})
        if "/Binary/" in path:
            binary_id = path.rsplit("/", 1)[-1]
            if binary_id not in self.binaries:
                return httpx.Response(404, json={"resourceType": "OperationOutcome"})
            content_type, data = self.binaries[binary_id]
            return httpx.Response(200, json={
                "resourceType": "Binary",
                "contentType": content_type,
                "data": base64.b64encode(data).decode("ascii"),
            })
        return httpx.Response(400)


class FakeInference:
    """Inference endpoint returning a canned response, recording request bodies."""

    def __init__(self, status_code: int = 200, body=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.payloads: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        return httpx.Response(self.status_code, json=self.body)


@pytest.fixture
def make_pdf():
    return _make_pdf


@pytest.fixture
def make_png():
    return _make_png


@pytest.fixture
def doc_ref():
    return document_reference


@pytest.fixture
def settings():
    return AppSettings(fhir_base_url=FHIR_BASE, infer_api_base=INFER_BASE)


@pytest.fixture
def repository():
    """Repository with one ModelA/img1 record: raw BMP, summary PNG, 2-page PDF."""
    repo = FakeRepository()
    repo.entries.append(document_reference(
        "ModelA", "img1", raw="raw-1",
        attachments=[("image/png", "png-1"), ("application/pdf", "pdf-1")],
    ))
    repo.add_binary("raw-1", "image/png", _make_png((80, 60), (10, 10, 10)))
    repo.add_binary("png-1", "image/png", _make_png())
    repo.add_binary("pdf-1", "application/pdf", _make_pdf(2))
    return repo


@pytest.fixture
def inference():
    return FakeInference(status_code=500, body={"detail": "boom"})


@pytest.fixture
def make_session(settings, repository, inference):
    def _build(**overrides) -> ReportSession:
        s = settings.model_copy(update=overrides)
        fhir_client = FhirClient(s.fhir_base_url, transport=httpx.MockTransport(repository.handler))
        inference_client = InferenceClient(s, transport=httpx.MockTransport(inference.handler))
        return ReportSession(s, fhir_client, inference_client)
    return _build
