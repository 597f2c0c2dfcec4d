"""Domain models for the conversion service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .detection import DetectionResult, TargetFormat, detect_kind

DEFAULT_QUALITY = 80
MIN_QUALITY = 10
MAX_QUALITY = 95


def clamp_quality(value: object) -> int:
    """Parse *value* as an integer quality clamped to ``[10, 95]``.

    Missing or non-numeric input falls back to 80.
    """

    quality = DEFAULT_QUALITY
    if isinstance(value, bool) or value is None:
        quality = DEFAULT_QUALITY
    elif isinstance(value, (int, float)):
        try:
            quality = int(value)
        except (ValueError, OverflowError):
            quality = DEFAULT_QUALITY
    else:
        text = str(value).strip()
        try:
            quality = int(text)
        except ValueError:
            try:
                quality = int(float(text))
            except (ValueError, OverflowError):
                quality = DEFAULT_QUALITY
    return max(MIN_QUALITY, min(MAX_QUALITY, quality))


def parse_max_dimension(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass(frozen=True, slots=True)
class InputFile:
    """An uploaded file, read once and immutable afterwards."""

    name: str
    content_type: str | None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def detect(self) -> DetectionResult:
        return detect_kind(self.name, self.content_type, self.data)


@dataclass(frozen=True, slots=True)
class ConversionRequest:
    """Options and inputs for one conversion request."""

    target: TargetFormat
    files: tuple[InputFile, ...]
    quality: int = DEFAULT_QUALITY
    max_dimension: int = 2480
    compress_pdf: bool = False
    bundle: bool = False

    @classmethod
    def build(
        cls,
        files: Sequence[InputFile],
        *,
        target: str | TargetFormat | None = None,
        quality: object = None,
        max_dimension: object = None,
        default_max_dimension: int = 2480,
        compress_pdf: bool = False,
        bundle: bool = False,
    ) -> "ConversionRequest":
        target_format = (
            target if isinstance(target, TargetFormat) else TargetFormat.parse(target, TargetFormat.PDF)
        )
        return cls(
            target=target_format,
            files=tuple(files),
            quality=clamp_quality(quality),
            max_dimension=parse_max_dimension(max_dimension, default_max_dimension),
            compress_pdf=compress_pdf,
            bundle=bundle,
        )


@dataclass(frozen=True, slots=True)
class EncodedImage:
    data: bytes
    content_type: str
    extension: str
    job_id: str | None = None


@dataclass(frozen=True, slots=True)
class Artifact:
    name: str
    data: bytes
    content_type: str
    job_id: str | None = None
    note: str | None = None


@dataclass(slots=True)
class ConversionOutcome:
    """Result record for one input file (or for a combined document).

    A degraded outcome carries the original bytes and a note; it is never
    raised to the caller.
    """

    source: str
    artifacts: list[Artifact] = field(default_factory=list)
    strategy: str | None = None
    note: str | None = None
    degraded: bool = False
    job_ids: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def status(self) -> str:
        return "degraded" if self.degraded else "converted"


@dataclass(slots=True)
class BatchResult:
    request_id: str
    outcomes: list[ConversionOutcome]

    @property
    def artifacts(self) -> list[Artifact]:
        return [artifact for outcome in self.outcomes for artifact in outcome.artifacts]

    @property
    def job_ids(self) -> list[str]:
        ordered: list[str] = []
        for outcome in self.outcomes:
            for job_id in outcome.job_ids:
                if job_id not in ordered:
                    ordered.append(job_id)
        return ordered


__all__ = [
    "Artifact",
    "BatchResult",
    "ConversionOutcome",
    "ConversionRequest",
    "EncodedImage",
    "InputFile",
    "clamp_quality",
    "parse_max_dimension",
]
