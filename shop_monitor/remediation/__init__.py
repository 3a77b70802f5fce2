"""Cache remediation backends."""

from .backends import (
    CommandBackend,
    DirectoryCacheBackend,
    HttpPurgeBackend,
    ObjectCacheBackend,
    RemediationBackend,
    build_backends,
)
from .remediator import RemediationOutcome, Remediator

__all__ = [
    "CommandBackend",
    "DirectoryCacheBackend",
    "HttpPurgeBackend",
    "ObjectCacheBackend",
    "RemediationBackend",
    "RemediationOutcome",
    "Remediator",
    "build_backends",
]
