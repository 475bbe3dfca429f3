"""
Async FHIR repository client.

Two calls are used by the sidecar:
- DocumentReference search by category (the report index source)
- Binary read by id (raw images, summary PNGs and report PDFs)

Binary payloads are returned decoded; nothing is cached, every call
re-fetches from the repository.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from errors import NotFound, TransportError

logger = logging.getLogger(__name__)

_FHIR_JSON = "application/fhir+json"
_MISSING_STATUSES = (404, 410)


@dataclass
class BinaryPayload:
    """Decoded content of a FHIR Binary resource."""

    data: bytes
    content_type: str

    def __bool__(self) -> bool:
        return bool(self.data)

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class FhirClient:
    """Thin async wrapper over the repository's REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": _FHIR_JSON}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.base_url = base_url.rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"Repository request failed: {exc}") from exc

        if response.status_code in _MISSING_STATUSES:
            raise NotFound(f"Repository returned {response.status_code} for {url}")
        if response.status_code >= 400:
            raise TransportError(
                f"Repository error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Repository returned a non-JSON body for {url}") from exc

    async def search_document_references(
        self,
        category_system: str,
        category_code: str,
        count: int = 50,
        max_pages: int = 1,
    ) -> list[dict]:
        """Return bundle entries for DocumentReferences in the given category.

        Entries keep the repository's order. Paging follows the bundle's
        ``next`` link until max_pages bundles have been read.
        """
        params: Optional[dict] = {
            "category": f"{category_system}|{category_code}",
            "_count": str(count),
        }
        url = "DocumentReference"
        entries: list[dict] = []

        for page in range(max_pages):
            bundle = await self._get_json(url, params=params)
            if not isinstance(bundle, dict):
                raise TransportError("Repository search did not return a Bundle")
            page_entries = bundle.get("entry") or []
            entries.extend(e for e in page_entries if isinstance(e, dict))
            logger.info(
                "DocumentReference search page %d returned %d entries",
                page + 1, len(page_entries),
            )

            next_url = _next_link(bundle)
            if not next_url:
                break
            # next links are absolute and already carry the query string
            url, params = next_url, None

        return entries

    async def fetch_binary(
        self,
        binary_id: str,
        default_content_type: str = "application/octet-stream",
    ) -> BinaryPayload:
        """Fetch Binary/<id> and decode its base64 data.

        A Binary without data yields an empty payload; callers skip display.
        """
        resource = await self._get_json(
            f"Binary/{binary_id}", params={"_format": "json"},
        )
        if not isinstance(resource, dict):
            raise TransportError(f"Binary/{binary_id} is not a JSON resource")

        content_type = resource.get("contentType") or default_content_type
        encoded = resource.get("data")
        if not encoded:
            logger.warning("Binary/%s has no data", binary_id)
            return BinaryPayload(data=b"", content_type=content_type)

        if not isinstance(encoded, str):
            raise TransportError(f"Binary/{binary_id} data is not a base64 string")
        try:
            data = base64.b64decode("".join(encoded.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TransportError(f"Binary/{binary_id} carries invalid base64 data") from exc

        return BinaryPayload(data=data, content_type=content_type)


def _next_link(bundle: dict) -> Optional[str]:
    for link in bundle.get("link") or []:
        if isinstance(link, dict) and link.get("relation") == "next" and link.get("url"):
            return link["url"]
    return None
