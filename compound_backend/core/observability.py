"""Logging setup and lightweight request instrumentation for the routers."""
from __future__ import annotations

import logging
from time import perf_counter
from typing import Callable

from fastapi import Request

from compound_backend.config import Settings

_configured = False


def configure_logging(settings: Settings) -> None:
    """Install the root handler once using the configured level and format."""

    global _configured
    if _configured:
        return
    logging.basicConfig(level=settings.log_level.upper(), format=settings.log_format)
    _configured = True


def timing_dependency_factory(logger_name: str) -> Callable[[Request], None]:
    """Return a dependency that logs the request duration for a router."""

    logger = logging.getLogger(logger_name)

    async def _timing_dependency(request: Request):  # pragma: no cover - simple wrapper
        start = perf_counter()
        try:
            yield
        finally:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "endpoint_timing path=%s method=%s duration_ms=%.2f",
                request.url.path,
                request.method,
                duration_ms,
            )

    return _timing_dependency


__all__ = ["configure_logging", "timing_dependency_factory"]
