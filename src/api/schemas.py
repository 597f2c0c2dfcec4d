from __future__ import annotations

from pydantic import BaseModel


class HealthStatus(BaseModel):
    ok: bool
    app: str
    uptime_seconds: int
    timestamp: str


class Diagnostics(BaseModel):
    ok: bool
    python_version: str
    codec_available: bool
    codec_reason: str | None = None
    remote_configured: bool
    max_upload_mb: int
    max_dimension: int
    timestamp: str


class CodecInfo(BaseModel):
    ok: bool
    available: bool
    versions: dict[str, str | None]
    targets: list[str]


class ErrorDetail(BaseModel):
    error: str
    details: str
