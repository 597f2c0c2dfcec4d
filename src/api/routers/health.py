from __future__ import annotations

import platform
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.dependencies import get_config, get_service, get_started_at
from api.schemas import CodecInfo, Diagnostics, HealthStatus
from pdftool.config import AppConfig
from pdftool.core import ConversionService

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/health", summary="Health check", response_model=HealthStatus)
def health(started_at: float = Depends(get_started_at)) -> HealthStatus:
    return HealthStatus(
        ok=True,
        app="pdftool",
        uptime_seconds=round(time.time() - started_at) if started_at else 0,
        timestamp=_now(),
    )


@router.get("/diag", summary="Capability diagnostics", response_model=Diagnostics)
def diagnostics(
    service: ConversionService = Depends(get_service),
    config: AppConfig = Depends(get_config),
) -> Diagnostics:
    capabilities = service.capabilities
    return Diagnostics(
        ok=True,
        python_version=platform.python_version(),
        codec_available=capabilities.local_available,
        codec_reason=capabilities.codec.reason,
        remote_configured=capabilities.remote_available,
        max_upload_mb=config.runtime.max_upload_mb,
        max_dimension=config.runtime.max_dimension,
        timestamp=_now(),
    )


@router.get("/codec-info", summary="Local codec libraries and targets", response_model=CodecInfo)
def codec_info(service: ConversionService = Depends(get_service)) -> CodecInfo:
    codec = service.capabilities.codec
    return CodecInfo(
        ok=True,
        available=codec.available,
        versions=codec.versions(),
        targets=codec.supported_targets(),
    )


__all__ = ["router"]
