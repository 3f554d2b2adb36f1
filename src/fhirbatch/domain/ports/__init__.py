"""Domain port definitions for adapters."""

from __future__ import annotations

from .batch import BatchCodec, BatchExecutor, BearerToken, CredentialProvider

__all__ = ["BatchCodec", "BatchExecutor", "BearerToken", "CredentialProvider"]
