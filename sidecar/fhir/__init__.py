"""FHIR repository access: Binary/DocumentReference client and the report index."""

from fhir.client import BinaryPayload, FhirClient
from fhir.index import DocumentIndex, build_document_index

__all__ = [
    "BinaryPayload",
    "FhirClient",
    "DocumentIndex",
    "build_document_index",
]
