"""Build one multi-page PDF from an ordered list of images.

Each image goes through an ordered list of embedding methods; the first one
that embeds wins, otherwise a placeholder page is added. The output always
has exactly one page per input image.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol, Sequence

from .codec import DocumentComposer, EmbedKind, Unsupported
from .detection import TargetFormat
from .errors import ConversionError, RemoteJobError
from .models import InputFile
from .strategy import Capabilities, select_strategy
from .utils import TempPool, split_name

if TYPE_CHECKING:
    import pymupdf

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "Could not embed image on this page (conversion failed)."


class EmbedStatus(str, Enum):
    EMBEDDED = "embedded"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class EmbedAttempt:
    method: str
    status: EmbedStatus
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is EmbedStatus.EMBEDDED


@dataclass(slots=True)
class PageReport:
    source: str
    attempts: list[EmbedAttempt] = field(default_factory=list)
    placeholder: bool = False


@dataclass(slots=True)
class AssembledDocument:
    data: bytes
    page_count: int
    pages: list[PageReport]
    job_ids: list[str] = field(default_factory=list)

    @property
    def placeholders(self) -> int:
        return sum(1 for page in self.pages if page.placeholder)


@dataclass(slots=True)
class EmbedContext:
    composer: DocumentComposer
    capabilities: Capabilities
    quality: int
    max_dimension: int
    pool: TempPool
    job_ids: list[str] = field(default_factory=list)

    def record_job(self, job_id: str | None) -> None:
        if job_id and job_id not in self.job_ids:
            self.job_ids.append(job_id)


class EmbeddingMethod(Protocol):
    name: str

    def attempt(self, document: "pymupdf.Document", image: InputFile, context: EmbedContext) -> EmbedAttempt:  # pragma: no cover - interface
        ...


def _embed(
    context: EmbedContext, document: "pymupdf.Document", data: bytes, kind: EmbedKind
) -> EmbedAttempt:
    try:
        result = context.composer.embed_image(document, data, kind)
    except Exception as exc:
        return EmbedAttempt(kind, EmbedStatus.FAILED, str(exc))
    if isinstance(result, Unsupported):
        return EmbedAttempt(kind, EmbedStatus.UNSUPPORTED, result.reason)
    return EmbedAttempt(kind, EmbedStatus.EMBEDDED)


class JpegEmbedding:
    """Re-encode to JPEG through the image's own strategy, then embed."""

    name = "jpeg"

    def attempt(self, document: "pymupdf.Document", image: InputFile, context: EmbedContext) -> EmbedAttempt:
        payload = image.data
        strategy = select_strategy(image, context.capabilities)
        try:
            encoded = strategy.convert_image(
                image, TargetFormat.JPEG, context.quality, context.max_dimension, context.pool
            )
        except Exception as exc:
            if isinstance(exc, RemoteJobError):
                context.record_job(exc.job_id)
            logger.warning("JPEG re-encode of %s failed, embedding original bytes: %s", image.name, exc)
        else:
            payload = encoded.data
            context.record_job(encoded.job_id)
        return _embed(context, document, payload, "jpeg")


class PngEmbedding:
    """Re-encode to PNG with the local codec (raw bytes when it cannot), then embed."""

    name = "png"

    def attempt(self, document: "pymupdf.Document", image: InputFile, context: EmbedContext) -> EmbedAttempt:
        payload = image.data
        try:
            encoded = context.capabilities.codec.convert(
                image.data, TargetFormat.PNG, context.quality, context.max_dimension
            )
        except Exception as exc:
            logger.warning("PNG re-encode of %s failed: %s", image.name, exc)
        else:
            if not isinstance(encoded, Unsupported):
                payload = encoded.data
        return _embed(context, document, payload, "png")


DEFAULT_METHODS: tuple[EmbeddingMethod, ...] = (JpegEmbedding(), PngEmbedding())


class PageAssembler:
    def __init__(
        self,
        capabilities: Capabilities,
        *,
        composer: DocumentComposer | None = None,
        methods: Sequence[EmbeddingMethod] = DEFAULT_METHODS,
    ) -> None:
        self._capabilities = capabilities
        self._composer = composer or DocumentComposer()
        self._methods = tuple(methods)

    def assemble(
        self, images: Sequence[InputFile], *, quality: int, max_dimension: int, pool: TempPool
    ) -> AssembledDocument:
        if not images:
            raise ConversionError("NO_PAGES", "No images to assemble")
        context = EmbedContext(
            composer=self._composer,
            capabilities=self._capabilities,
            quality=quality,
            max_dimension=max_dimension,
            pool=pool,
        )
        document = self._composer.new_document()
        try:
            pages = [self._add_page(document, image, context) for image in images]
            page_count = self._composer.page_count(document)
            if page_count != len(images):
                raise ConversionError(
                    "PAGE_COUNT", f"Assembled {page_count} pages for {len(images)} images"
                )
            data = self._composer.save(document)
        finally:
            document.close()
        return AssembledDocument(data=data, page_count=page_count, pages=pages, job_ids=context.job_ids)

    def compress(
        self, source: InputFile, *, quality: int, max_dimension: int, pool: TempPool
    ) -> AssembledDocument:
        """Rasterize every page of *source* and rebuild it from the page images.

        Raises :class:`ConversionError` when the document cannot be rasterized.
        """

        strategy = select_strategy(source, self._capabilities)
        rendered = strategy.rasterize(source, TargetFormat.JPEG, quality, max_dimension, pool)
        if not rendered:
            raise ConversionError("RASTERIZE_EMPTY", f"Cannot rasterize PDF pages of {source.name}")
        stem, _ = split_name(source.name)
        images = [
            InputFile(name=f"{stem}_page{index}.{page.extension}", content_type=page.content_type, data=page.data)
            for index, page in enumerate(rendered, start=1)
        ]
        document = self.assemble(images, quality=quality, max_dimension=max_dimension, pool=pool)
        for page in rendered:
            if page.job_id and page.job_id not in document.job_ids:
                document.job_ids.append(page.job_id)
        return document

    def _add_page(self, document: "pymupdf.Document", image: InputFile, context: EmbedContext) -> PageReport:
        report = PageReport(source=image.name)
        for method in self._methods:
            attempt = method.attempt(document, image, context)
            report.attempts.append(attempt)
            if attempt.succeeded:
                return report
            logger.warning("Embedding %s as %s %s: %s", image.name, attempt.method, attempt.status.value, attempt.detail)
        self._composer.add_placeholder_page(document, PLACEHOLDER_TEXT)
        report.placeholder = True
        return report


__all__ = [
    "AssembledDocument",
    "EmbedAttempt",
    "EmbedContext",
    "EmbedStatus",
    "EmbeddingMethod",
    "JpegEmbedding",
    "PageAssembler",
    "PageReport",
    "PngEmbedding",
    "PLACEHOLDER_TEXT",
]
