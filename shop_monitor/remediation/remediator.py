from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from shop_monitor.remediation.backends import ObjectCacheBackend, RemediationBackend


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RemediationOutcome:
    backend_name: str
    ok: bool = True
    error: str | None = None


class Remediator:
    """Flush whichever caching layer is present, first-available-wins.

    ``backends`` is in priority order. A generic fallback is appended so
    ``remediate`` always selects exactly one backend.
    """

    def __init__(
        self,
        backends: list[RemediationBackend],
        *,
        fallback: RemediationBackend | None = None,
        timeout: float = 5.0,
    ):
        self.fallback = fallback or ObjectCacheBackend()
        self.backends = [*backends, self.fallback]
        self.timeout = timeout

    def select_backend(self) -> RemediationBackend:
        for backend in self.backends[:-1]:
            try:
                if backend.detect():
                    return backend
            except Exception as e:
                logger.warning("Cache backend detection failed", backend=backend.name, error=str(e))
        return self.fallback

    async def remediate(self) -> RemediationOutcome:
        backend = self.select_backend()
        try:
            await asyncio.wait_for(backend.invalidate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Cache flush timed out", backend=backend.name, timeout=self.timeout)
            return RemediationOutcome(backend_name=backend.name, ok=False, error="timed out")
        except Exception as e:
            logger.warning("Cache flush failed", backend=backend.name, error=str(e))
            return RemediationOutcome(backend_name=backend.name, ok=False, error=str(e))

        logger.info("Cache flushed", backend=backend.name)
        return RemediationOutcome(backend_name=backend.name)
