"""FHIR batch adapter."""

from __future__ import annotations

from .auth import ClientCredentialsProvider, TokenResponse
from .client import FhirBatchClient
from .codec import LOCAL_REFERENCE_PREFIX, FhirBundleCodec, render_reference
from .schema import Bundle, BundleEntry, BundleEntryRequest, BundleEntryResponse, OperationOutcome

__all__ = [
    "LOCAL_REFERENCE_PREFIX",
    "Bundle",
    "BundleEntry",
    "BundleEntryRequest",
    "BundleEntryResponse",
    "ClientCredentialsProvider",
    "FhirBatchClient",
    "FhirBundleCodec",
    "OperationOutcome",
    "TokenResponse",
    "render_reference",
]
