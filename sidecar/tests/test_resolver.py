"""Tests for the lookup-with-fallback resolver and the inference client."""

import asyncio
import json

import httpx
import pytest

from api.models import AppSettings, ArtifactRecord, ResolutionState
from errors import ConfigurationError, TransportError
from inference.client import InferenceClient
from inference.resolver import RUN_ID_FALLBACK, RUN_ID_NOT_ATTEMPTED, InferenceResolver

FALLBACK = ArtifactRecord(
    model="ModelA",
    image_label="img1",
    raw_binary_id="raw-1",
    summary_image_binary_id="png-fallback",
    report_document_binary_id="pdf-fallback",
)


def _resolver(handler, infer_api_base="http://infer.test"):
    settings = AppSettings(infer_api_base=infer_api_base)
    client = InferenceClient(settings, transport=httpx.MockTransport(handler))
    return InferenceResolver(client)


def _json_handler(status_code, body, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, json=body)
    return handler


class TestResolve:
    def test_no_identifiers_skips_remote_call(self):
        calls = []
        resolver = _resolver(_json_handler(200, {"runId": "r"}, calls))
        result = asyncio.run(resolver.resolve("ModelA", None, None, "img1", FALLBACK))
        assert calls == []
        assert result.run_id == RUN_ID_NOT_ATTEMPTED == "N/A"
        assert result.summary_image_binary_id == FALLBACK.summary_image_binary_id
        assert result.report_document_binary_id == FALLBACK.report_document_binary_id
        assert result.state == ResolutionState.NO_IDENTIFIERS_FALLBACK_USED

    def test_http_500_uses_fallback(self):
        resolver = _resolver(_json_handler(500, {"detail": "boom"}))
        result = asyncio.run(resolver.resolve("ModelA", "raw-1", None, "img1", FALLBACK))
        assert result.run_id == RUN_ID_FALLBACK == "N/A (fallback)"
        assert result.summary_image_binary_id == "png-fallback"
        assert result.report_document_binary_id == "pdf-fallback"
        assert result.state == ResolutionState.REMOTE_FAILED_FALLBACK_USED

    def test_network_error_uses_fallback(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = asyncio.run(_resolver(handler).resolve("ModelA", None, "ab" * 32, "img1", FALLBACK))
        assert result.run_id == RUN_ID_FALLBACK
        assert result.summary_image_binary_id == "png-fallback"

    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["a", "list"]),
    ])
    def test_malformed_body_uses_fallback(self, response):
        result = asyncio.run(_resolver(lambda request: response).resolve("ModelA", "raw-1", None, "img1", FALLBACK))
        assert result.run_id == RUN_ID_FALLBACK
        assert result.report_document_binary_id == "pdf-fallback"

    @pytest.mark.parametrize("base", [None, "", "https://YOUR_PUBLIC_INFER_API.example"])
    def test_unconfigured_endpoint_uses_fallback(self, base):
        calls = []
        resolver = _resolver(_json_handler(200, {}, calls), infer_api_base=base)
        result = asyncio.run(resolver.resolve("ModelA", "raw-1", "ab" * 32, "img1", FALLBACK))
        assert calls == []
        assert result.run_id == RUN_ID_FALLBACK
        assert result.state == ResolutionState.REMOTE_FAILED_FALLBACK_USED

    def test_camel_case_response(self):
        body = {"runId": "run-42", "summaryImageBinaryId": "png-9", "reportDocumentBinaryId": "pdf-9"}
        result = asyncio.run(_resolver(_json_handler(200, body)).resolve("ModelA", "raw-1", None, "img1", FALLBACK))
        assert result.run_id == "run-42"
        assert result.summary_image_binary_id == "png-9"
        assert result.report_document_binary_id == "pdf-9"
        assert result.state == ResolutionState.REMOTE_SUCCEEDED

    def test_snake_case_response(self):
        body = {"run_id": "run-7", "png_binary_id": "png-7", "pdf_binary_id": "pdf-7"}
        result = asyncio.run(_resolver(_json_handler(200, body)).resolve("ModelA", "raw-1", None, "img1", FALLBACK))
        assert (result.run_id, result.summary_image_binary_id, result.report_document_binary_id) == (
            "run-7", "png-7", "pdf-7",
        )

    def test_successful_response_with_missing_fields_is_not_fallback(self):
        result = asyncio.run(_resolver(_json_handler(200, {})).resolve("ModelA", "raw-1", None, "img1", FALLBACK))
        assert result.run_id is None
        assert result.summary_image_binary_id is None
        assert result.state == ResolutionState.REMOTE_SUCCEEDED

    @pytest.mark.parametrize("raw_id,digest", [(None, None), ("raw-1", None), (None, "cd" * 32), ("raw-1", "cd" * 32)])
    def test_never_raises(self, raw_id, digest):
        def handler(request):
            raise RuntimeError("unexpected")

        result = asyncio.run(_resolver(handler).resolve("ModelA", raw_id, digest, "img1", FALLBACK))
        assert result is not None
        assert result.summary_image_binary_id == FALLBACK.summary_image_binary_id


class TestInferenceClient:
    def test_payload_carries_available_identifiers(self):
        calls = []
        client = InferenceClient(
            AppSettings(infer_api_base="http://infer.test/"),
            transport=httpx.MockTransport(_json_handler(200, {}, calls)),
        )
        asyncio.run(client.predict("ModelA", "img1", raw_binary_id="raw-1"))
        assert str(calls[0].url) == "http://infer.test/predict"
        assert calls[0].method == "POST"
        assert json.loads(calls[0].content) == {"model": "ModelA", "imageLabel": "img1", "rawBinaryId": "raw-1"}

    def test_payload_with_digest_only(self):
        calls = []
        client = InferenceClient(
            AppSettings(infer_api_base="http://infer.test"),
            transport=httpx.MockTransport(_json_handler(200, {}, calls)),
        )
        asyncio.run(client.predict("ModelA", "img1", sha256="ef" * 32))
        assert json.loads(calls[0].content) == {"model": "ModelA", "imageLabel": "img1", "sha256": "ef" * 32}

    def test_non_2xx_raises_with_status(self):
        client = InferenceClient(
            AppSettings(infer_api_base="http://infer.test"),
            transport=httpx.MockTransport(_json_handler(404, {"detail": "no match"})),
        )
        with pytest.raises(TransportError) as info:
            asyncio.run(client.predict("ModelA", "img1", raw_binary_id="raw-1"))
        assert info.value.status_code == 404

    def test_missing_base_url_raises_configuration_error(self):
        client = InferenceClient(AppSettings(), transport=httpx.MockTransport(_json_handler(200, {})))
        with pytest.raises(ConfigurationError):
            asyncio.run(client.predict("ModelA", "img1", raw_binary_id="raw-1"))
