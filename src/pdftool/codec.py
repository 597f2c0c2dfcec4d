"""Local image codec and PDF composition primitives.

Raster work goes through Pillow; page rendering and document composition go
through PyMuPDF. Library presence is probed once by :func:`probe_codec` and the
resulting :class:`LocalCodec` is immutable afterwards.
"""

from __future__ import annotations

import importlib.util
import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from .config import CodecConfig
from .detection import FORMAT_SPECS, TargetFormat, sniff_mime
from .errors import ConversionError
from .models import EncodedImage

if TYPE_CHECKING:
    import pymupdf
    from PIL import Image

logger = logging.getLogger(__name__)

CODEC_MODULES = ("PIL", "pymupdf")
PLACEHOLDER_PAGE_SIZE = (600, 800)
PLACEHOLDER_ORIGIN = (40, 40)
PLACEHOLDER_FONT_SIZE = 10
WHITE = (255, 255, 255)

EmbedKind = Literal["jpeg", "png"]

_EMBED_MIME: dict[str, str] = {"jpeg": "image/jpeg", "png": "image/png"}


@dataclass(frozen=True, slots=True)
class Unsupported:
    """Non-fatal signal that the codec cannot handle the request."""

    reason: str


class CodecError(ConversionError):
    def __init__(self, message: str) -> None:
        super().__init__("CODEC_ERROR", message)


def _has_alpha(image: "Image.Image") -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info)


def _flatten(image: "Image.Image") -> "Image.Image":
    from PIL import Image

    if not _has_alpha(image):
        return image if image.mode == "RGB" else image.convert("RGB")
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, WHITE)
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


def _normalize_mode(image: "Image.Image", target: TargetFormat) -> "Image.Image":
    if not target.spec.alpha:
        return _flatten(image)
    if _has_alpha(image):
        return image if image.mode == "RGBA" else image.convert("RGBA")
    return image if image.mode == "RGB" else image.convert("RGB")


class LocalCodec:
    def __init__(self, *, available: bool = True, render_dpi: int = 150, reason: str | None = None) -> None:
        self.available = available
        self.render_dpi = render_dpi
        self.reason = reason

    def convert(
        self, data: bytes, target: TargetFormat, quality: int, max_dimension: int
    ) -> EncodedImage | Unsupported:
        if not self.available:
            return Unsupported(self.reason or "local codec unavailable")
        if target.is_document:
            return Unsupported("document targets are composed, not encoded")
        from PIL import ImageOps, UnidentifiedImageError

        try:
            image = self._open(data)
        except UnidentifiedImageError:
            return Unsupported("cannot decode image")
        except (OSError, ValueError) as exc:
            raise CodecError(f"image decode failed: {exc}") from exc
        image = ImageOps.exif_transpose(image)
        return self._encode(image, target, quality, max_dimension)

    def page_count(self, document: bytes) -> int | None:
        if not self.available:
            return None
        import pymupdf

        try:
            with pymupdf.open(stream=document, filetype="pdf") as doc:
                count = doc.page_count
        except (RuntimeError, ValueError):
            return None
        return count if count > 0 else None

    def rasterize(
        self,
        document: bytes,
        page_index: int,
        target: TargetFormat,
        quality: int,
        max_dimension: int,
    ) -> EncodedImage | Unsupported:
        if not self.available:
            return Unsupported(self.reason or "local codec unavailable")
        if target.is_document:
            return Unsupported("cannot rasterize into a document format")
        import pymupdf
        from PIL import Image

        try:
            with pymupdf.open(stream=document, filetype="pdf") as doc:
                if page_index >= doc.page_count:
                    return Unsupported(f"page {page_index + 1} out of range")
                pixmap = doc[page_index].get_pixmap(dpi=self.render_dpi, alpha=False)
                image = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
        except (RuntimeError, ValueError) as exc:
            return Unsupported(f"cannot render page {page_index + 1}: {exc}")
        return self._encode(image, target, quality, max_dimension)

    def rasterize_document(
        self, document: bytes, target: TargetFormat, quality: int, max_dimension: int
    ) -> list[EncodedImage] | Unsupported:
        """Render every page, or report why the document cannot be fully rendered.

        When the page count cannot be read, a first-page render is tried, then a
        plain image decode for image bytes labelled as PDF.
        """

        count = self.page_count(document)
        if count is None:
            single = self.rasterize(document, 0, target, quality, max_dimension)
            if isinstance(single, Unsupported):
                single = self.convert(document, target, quality, max_dimension)
            return single if isinstance(single, Unsupported) else [single]
        pages: list[EncodedImage] = []
        for index in range(count):
            page = self.rasterize(document, index, target, quality, max_dimension)
            if isinstance(page, Unsupported):
                logger.warning("Rasterization stopped at page %d: %s", index + 1, page.reason)
                return Unsupported(f"rendered {len(pages)} of {count} pages: {page.reason}")
            pages.append(page)
        return pages

    def versions(self) -> dict[str, str | None]:
        versions: dict[str, str | None] = {"pillow": None, "pymupdf": None}
        if importlib.util.find_spec("PIL") is not None:
            import PIL

            versions["pillow"] = PIL.__version__
        if importlib.util.find_spec("pymupdf") is not None:
            import pymupdf

            versions["pymupdf"] = pymupdf.VersionBind
        return versions

    def supported_targets(self) -> list[str]:
        if not self.available:
            return []
        from PIL import Image

        Image.init()
        supported = [TargetFormat.PDF.value]
        for target, spec in FORMAT_SPECS.items():
            if not target.is_document and spec.pil_format in Image.SAVE:
                supported.append(target.value)
        return supported

    def _open(self, data: bytes) -> "Image.Image":
        from PIL import Image

        image = Image.open(io.BytesIO(data))
        if getattr(image, "n_frames", 1) > 1:
            image.seek(0)
        image.load()
        return image

    def _encode(
        self, image: "Image.Image", target: TargetFormat, quality: int, max_dimension: int
    ) -> EncodedImage | Unsupported:
        from PIL import Image

        spec = target.spec
        if max(image.size) > max_dimension:
            image = image.copy()
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        image = _normalize_mode(image, target)
        options: dict[str, object] = {}
        if spec.lossy:
            options["quality"] = quality
        if target in (TargetFormat.JPEG, TargetFormat.PNG):
            options["optimize"] = True
        if target is TargetFormat.TIFF:
            options["compression"] = "tiff_lzw"
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=spec.pil_format, **options)
        except KeyError as exc:
            return Unsupported(f"no {spec.pil_format} encoder available: {exc}")
        except (OSError, ValueError) as exc:
            raise CodecError(f"{spec.pil_format} encode failed: {exc}") from exc
        return EncodedImage(data=buffer.getvalue(), content_type=spec.mime_type, extension=spec.extension)


class DocumentComposer:
    """PDF page composition on top of PyMuPDF."""

    def new_document(self) -> "pymupdf.Document":
        import pymupdf

        return pymupdf.open()

    def embed_image(self, document: "pymupdf.Document", data: bytes, kind: EmbedKind) -> Unsupported | None:
        """Append one page sized to the image and draw the image on it.

        Returns :class:`Unsupported` when *data* is not of *kind*; raises on
        any other failure, leaving the document page count unchanged.
        """

        import pymupdf

        expected = _EMBED_MIME[kind]
        detected = sniff_mime(data)
        if detected != expected:
            return Unsupported(f"expected {expected}, got {detected or 'unknown data'}")
        pixmap = pymupdf.Pixmap(data)
        page = document.new_page(width=pixmap.width, height=pixmap.height)
        try:
            page.insert_image(page.rect, stream=data)
        except Exception:
            document.delete_page(page.number)
            raise
        return None

    def add_placeholder_page(self, document: "pymupdf.Document", text: str) -> None:
        width, height = PLACEHOLDER_PAGE_SIZE
        page = document.new_page(width=width, height=height)
        page.insert_text(PLACEHOLDER_ORIGIN, text, fontsize=PLACEHOLDER_FONT_SIZE)

    def page_count(self, document: "pymupdf.Document") -> int:
        return document.page_count

    def save(self, document: "pymupdf.Document") -> bytes:
        return document.tobytes(garbage=3, deflate=True)


def probe_codec(config: CodecConfig) -> LocalCodec:
    """Resolve local codec availability once, at startup."""

    missing = [name for name in CODEC_MODULES if importlib.util.find_spec(name) is None]
    if not config.enabled:
        reason = "local codec disabled by configuration"
    elif missing:
        reason = f"missing codec libraries: {', '.join(missing)}"
    else:
        reason = None
    if reason:
        logger.warning("Local codec unavailable: %s", reason)
    else:
        logger.info("Local codec available")
    return LocalCodec(available=reason is None, render_dpi=config.render_dpi, reason=reason)


__all__ = [
    "CodecError",
    "DocumentComposer",
    "EmbedKind",
    "LocalCodec",
    "Unsupported",
    "probe_codec",
]
