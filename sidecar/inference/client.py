"""
Client for the demo inference endpoint.

The endpoint may run a model or simply look up precomputed outputs. It
accepts either lookup key:
1) rawBinaryId: the repository Binary id of the input image
2) sha256: the digest of the input image bytes

Both are sent when available; the service decides which to use.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from api.models import AppSettings
from api.settings_store import inference_base_url
from errors import TransportError

logger = logging.getLogger(__name__)

PREDICT_PATH = "/predict"


class InferenceClient:
    """POSTs lookup requests to <INFER_API_BASE>/predict."""

    def __init__(
        self,
        settings: AppSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def predict(
        self,
        model: str,
        image_label: str,
        raw_binary_id: Optional[str] = None,
        sha256: Optional[str] = None,
    ) -> dict[str, Any]:
        """Return the service's JSON object for this input.

        Raises ConfigurationError if no endpoint is configured and
        TransportError for network failures, non-2xx status or a body that
        is not a JSON object.
        """
        url = inference_base_url(self.settings) + PREDICT_PATH

        payload: dict[str, str] = {"model": model, "imageLabel": image_label}
        if raw_binary_id:
            payload["rawBinaryId"] = str(raw_binary_id)
        if sha256:
            payload["sha256"] = str(sha256)

        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Inference API request failed: {exc}") from exc

        if not response.is_success:
            raise TransportError(
                f"Inference API error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError("Inference API returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise TransportError("Inference API returned JSON that is not an object")
        return body
