from __future__ import annotations

import concurrent.futures
import logging
import time
import uuid
from typing import Sequence

from .assembly import AssembledDocument, PageAssembler
from .config import AppConfig
from .detection import DetectionError, DetectionResult, FileKind, TargetFormat
from .errors import ConversionError, RemoteJobError
from .logging import RequestLogger
from .models import Artifact, BatchResult, ConversionOutcome, ConversionRequest, InputFile
from .strategy import Capabilities, ConversionStrategy, resolve_capabilities, select_strategy
from .utils import TempPool, epoch_ms, generate_run_id, split_name

logger = logging.getLogger(__name__)

UNKNOWN_INPUT_NOTE = "Unknown input type, returned original."


class ConversionService:
    """Orchestrates one conversion request.

    Every input yields an outcome. A failing file degrades to its original
    bytes with a note; only an empty request or a request that produced no
    output at all raises :class:`ConversionError`.
    """

    def __init__(
        self,
        config: AppConfig,
        capabilities: Capabilities | None = None,
        *,
        request_logger: RequestLogger | None = None,
    ) -> None:
        self._config = config
        self._capabilities = capabilities or resolve_capabilities(config)
        self._assembler = PageAssembler(self._capabilities)
        runtime = config.runtime
        log_file = runtime.log_dir / runtime.log_file if runtime.log_dir is not None else None
        self._request_logger = request_logger or RequestLogger(log_file)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    def close(self) -> None:
        if self._capabilities.remote is not None:
            self._capabilities.remote.close()

    def build_request(
        self,
        files: Sequence[InputFile],
        *,
        target: str | None = None,
        quality: object = None,
        max_dimension: object = None,
        compress_pdf: bool = False,
        bundle: bool = False,
    ) -> ConversionRequest:
        runtime = self._config.runtime
        if len(files) > runtime.max_files:
            raise ConversionError(
                "TOO_MANY_FILES", f"At most {runtime.max_files} files per request, got {len(files)}"
            )
        for source in files:
            self.ensure_size(source)
        try:
            return ConversionRequest.build(
                files,
                target=target,
                quality=quality,
                max_dimension=max_dimension,
                default_max_dimension=runtime.max_dimension,
                compress_pdf=compress_pdf,
                bundle=bundle,
            )
        except DetectionError as exc:
            raise ConversionError("UNSUPPORTED_FORMAT", str(exc)) from exc

    def ensure_size(self, source: InputFile) -> None:
        runtime = self._config.runtime
        if source.size > runtime.max_upload_bytes:
            raise ConversionError(
                "SIZE_LIMIT", f"{source.name} exceeds the {runtime.max_upload_mb} MB upload limit"
            )

    def convert(self, request: ConversionRequest) -> BatchResult:
        if not request.files:
            raise ConversionError("NO_FILES", "No files uploaded")
        request_id = generate_run_id("req")
        logger.info(
            "Request %s: %d file(s) -> %s (quality=%d, max_dim=%d)",
            request_id,
            len(request.files),
            request.target.value,
            request.quality,
            request.max_dimension,
        )
        with TempPool(self._config.runtime.temp_dir) as pool:
            outcomes = self._convert_all(request, pool)
        batch = BatchResult(request_id=request_id, outcomes=outcomes)
        try:
            self._request_logger.record(batch)
        except OSError as exc:
            logger.warning("Request log for %s not written: %s", request_id, exc)
        if not batch.artifacts:
            raise ConversionError("NO_OUTPUTS", "No file in the request could be processed")
        return batch

    def preview(self, source: InputFile, request: ConversionRequest) -> ConversionOutcome:
        """Convert a single file without the combined-document special case."""

        with TempPool(self._config.runtime.temp_dir) as pool:
            return self._convert_one(request, source, source.detect(), pool)

    def _convert_all(self, request: ConversionRequest, pool: TempPool) -> list[ConversionOutcome]:
        detections = [source.detect() for source in request.files]
        if request.target.is_document and all(d.kind is FileKind.IMAGE for d in detections):
            return [self._combine_images(request, pool)]
        pairs = list(zip(request.files, detections))
        parallelism = max(1, self._config.runtime.parallelism)
        if parallelism == 1 or len(pairs) == 1:
            return [self._convert_one(request, source, detection, pool) for source, detection in pairs]
        with concurrent.futures.ThreadPoolExecutor(max_workers=min(parallelism, len(pairs))) as executor:
            return list(
                executor.map(lambda pair: self._convert_one(request, pair[0], pair[1], pool), pairs)
            )

    def _combine_images(self, request: ConversionRequest, pool: TempPool) -> ConversionOutcome:
        start = time.perf_counter()
        outcome = ConversionOutcome(source=f"{len(request.files)} image(s)", strategy="assemble")
        name = f"{epoch_ms()}_{uuid.uuid4()}.pdf"
        try:
            document = self._assembler.assemble(
                request.files, quality=request.quality, max_dimension=request.max_dimension, pool=pool
            )
        except Exception as exc:
            logger.exception("Combining %d images failed", len(request.files))
            outcome.degraded = True
            outcome.note = str(exc)
            outcome.artifacts = [self._original_artifact(source, source.detect(), str(exc)) for source in request.files]
        else:
            outcome.artifacts = [self._document_artifact(name, document, outcome)]
        outcome.elapsed_ms = (time.perf_counter() - start) * 1000
        return outcome

    def _convert_one(
        self,
        request: ConversionRequest,
        source: InputFile,
        detection: DetectionResult,
        pool: TempPool,
    ) -> ConversionOutcome:
        start = time.perf_counter()
        strategy = select_strategy(source, self._capabilities)
        outcome = ConversionOutcome(source=source.name, strategy=strategy.name)
        if detection.kind is FileKind.UNKNOWN:
            outcome.degraded = True
            outcome.note = UNKNOWN_INPUT_NOTE
            outcome.artifacts = [
                Artifact(source.name, source.data, self._content_type(source, detection), note=UNKNOWN_INPUT_NOTE)
            ]
            return outcome
        try:
            outcome.artifacts = self._dispatch(request, source, detection, strategy, pool, outcome)
        except Exception as exc:
            if isinstance(exc, RemoteJobError) and exc.job_id and exc.job_id not in outcome.job_ids:
                outcome.job_ids.append(exc.job_id)
            if isinstance(exc, ConversionError):
                logger.warning("Conversion of %s failed [%s]: %s", source.name, exc.code, exc)
            else:
                logger.exception("Unexpected failure converting %s", source.name)
            outcome.degraded = True
            outcome.note = str(exc) or exc.__class__.__name__
            outcome.artifacts = [self._original_artifact(source, detection, outcome.note)]
        outcome.elapsed_ms = (time.perf_counter() - start) * 1000
        return outcome

    def _dispatch(
        self,
        request: ConversionRequest,
        source: InputFile,
        detection: DetectionResult,
        strategy: ConversionStrategy,
        pool: TempPool,
        outcome: ConversionOutcome,
    ) -> list[Artifact]:
        stem, _ = split_name(source.name)
        target = request.target
        if detection.kind is FileKind.IMAGE:
            if target.is_document:
                document = self._assembler.assemble(
                    [source], quality=request.quality, max_dimension=request.max_dimension, pool=pool
                )
                return [self._document_artifact(f"{stem}.pdf", document, outcome)]
            encoded = strategy.convert_image(source, target, request.quality, request.max_dimension, pool)
            if encoded.job_id:
                outcome.job_ids.append(encoded.job_id)
            extension = encoded.extension or target.extension
            return [Artifact(f"{stem}.{extension}", encoded.data, encoded.content_type, job_id=encoded.job_id)]

        if target.is_document:
            if not request.compress_pdf:
                return [Artifact(f"{stem}.pdf", source.data, TargetFormat.PDF.mime_type)]
            document = self._assembler.compress(
                source, quality=request.quality, max_dimension=request.max_dimension, pool=pool
            )
            return [self._document_artifact(f"{stem}_compressed.pdf", document, outcome)]

        pages = strategy.rasterize(source, target, request.quality, request.max_dimension, pool)
        if not pages:
            raise ConversionError("RASTERIZE_EMPTY", f"Unable to rasterize PDF pages of {source.name}")
        artifacts = []
        for index, page in enumerate(pages, start=1):
            if page.job_id and page.job_id not in outcome.job_ids:
                outcome.job_ids.append(page.job_id)
            extension = page.extension or target.extension
            artifacts.append(
                Artifact(f"{stem}_page{index}.{extension}", page.data, page.content_type, job_id=page.job_id)
            )
        return artifacts

    def _document_artifact(
        self, name: str, document: AssembledDocument, outcome: ConversionOutcome
    ) -> Artifact:
        for job_id in document.job_ids:
            if job_id not in outcome.job_ids:
                outcome.job_ids.append(job_id)
        note = None
        if document.placeholders:
            note = (
                f"{document.placeholders} of {document.page_count} image(s) could not be embedded; "
                "placeholder pages were inserted."
            )
            outcome.note = note
        job_id = document.job_ids[0] if document.job_ids else None
        return Artifact(name, document.data, TargetFormat.PDF.mime_type, job_id=job_id, note=note)

    def _original_artifact(self, source: InputFile, detection: DetectionResult, note: str) -> Artifact:
        stem, suffix = split_name(source.name)
        if not suffix and detection.kind is FileKind.PDF:
            suffix = ".pdf"
        return Artifact(f"{stem}_original{suffix}", source.data, self._content_type(source, detection), note=note)

    def _content_type(self, source: InputFile, detection: DetectionResult) -> str:
        return source.content_type or detection.mime_type or "application/octet-stream"


__all__ = [
    "ConversionService",
    "ConversionError",
    "UNKNOWN_INPUT_NOTE",
]
