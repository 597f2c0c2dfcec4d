from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from enum import Enum

from .utils import split_name


class FileKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    UNKNOWN = "unknown"


class TargetFormat(str, Enum):
    PDF = "pdf"
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    TIFF = "tiff"
    BMP = "bmp"

    @classmethod
    def parse(cls, value: str | None, default: "TargetFormat | None" = None) -> "TargetFormat":
        normalized = (value or "").strip().lower().lstrip(".")
        if normalized == "jpg":
            normalized = "jpeg"
        elif normalized == "tif":
            normalized = "tiff"
        if not normalized and default is not None:
            return default
        try:
            return cls(normalized)
        except ValueError as exc:
            raise DetectionError(f"Unsupported target format: {value!r}") from exc

    @property
    def spec(self) -> "FormatSpec":
        return FORMAT_SPECS[self]

    @property
    def extension(self) -> str:
        return self.spec.extension

    @property
    def mime_type(self) -> str:
        return self.spec.mime_type

    @property
    def is_document(self) -> bool:
        return self is TargetFormat.PDF


@dataclass(frozen=True, slots=True)
class FormatSpec:
    pil_format: str
    extension: str
    mime_type: str
    lossy: bool
    alpha: bool


FORMAT_SPECS: dict[TargetFormat, FormatSpec] = {
    TargetFormat.PDF: FormatSpec("PDF", "pdf", "application/pdf", lossy=False, alpha=False),
    TargetFormat.JPEG: FormatSpec("JPEG", "jpg", "image/jpeg", lossy=True, alpha=False),
    TargetFormat.PNG: FormatSpec("PNG", "png", "image/png", lossy=False, alpha=True),
    TargetFormat.WEBP: FormatSpec("WEBP", "webp", "image/webp", lossy=True, alpha=True),
    TargetFormat.AVIF: FormatSpec("AVIF", "avif", "image/avif", lossy=True, alpha=True),
    TargetFormat.TIFF: FormatSpec("TIFF", "tiff", "image/tiff", lossy=False, alpha=True),
    TargetFormat.BMP: FormatSpec("BMP", "bmp", "image/bmp", lossy=False, alpha=False),
}

EXTENSION_MIME_MAP: dict[str, str] = {
    ".heic": "image/heic",
    ".heif": "image/heif",
    ".avif": "image/avif",
    ".webp": "image/webp",
}


@dataclass(slots=True)
class DetectionResult:
    kind: FileKind
    mime_type: str
    extension: str


class DetectionError(RuntimeError):
    """Raised when format detection fails."""


def guess_mime(name: str) -> str:
    _, suffix = split_name(name)
    suffix = suffix.lower()
    if suffix in EXTENSION_MIME_MAP:
        return EXTENSION_MIME_MAP[suffix]
    mime, _ = mimetypes.guess_type(f"file{suffix}")
    return mime or "application/octet-stream"


def sniff_mime(data: bytes) -> str | None:
    if data.startswith(b"%PDF"):
        return "application/pdf"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[4:12] in (b"ftypheic", b"ftypheix", b"ftypmif1", b"ftypmsf1"):
        return "image/heic"
    return None


def is_image_mime(mime: str) -> bool:
    return mime.lower().startswith("image/")


def detect_kind(name: str, declared_mime: str | None, data: bytes = b"") -> DetectionResult:
    """Classify an upload as image, PDF or unknown.

    The declared content type wins when it is specific; otherwise the name and
    the leading bytes are consulted.
    """

    _, extension = split_name(name)
    extension = extension.lower()
    mime = (declared_mime or "").strip().lower()
    if not mime or mime == "application/octet-stream":
        mime = sniff_mime(data) or guess_mime(name)
    if mime == "application/pdf" or extension == ".pdf":
        return DetectionResult(kind=FileKind.PDF, mime_type="application/pdf", extension=extension)
    if is_image_mime(mime) or extension in EXTENSION_MIME_MAP:
        return DetectionResult(kind=FileKind.IMAGE, mime_type=mime, extension=extension)
    return DetectionResult(kind=FileKind.UNKNOWN, mime_type=mime, extension=extension)


__all__ = [
    "DetectionError",
    "DetectionResult",
    "FileKind",
    "FormatSpec",
    "TargetFormat",
    "detect_kind",
    "guess_mime",
    "is_image_mime",
    "sniff_mime",
]
