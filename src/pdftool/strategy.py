"""Per-file choice between the local codec and the remote service.

The variant is picked once per file, before any I/O, by
:func:`select_strategy`; the chosen object then performs the conversion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .codec import LocalCodec, Unsupported, probe_codec
from .config import AppConfig
from .detection import TargetFormat
from .errors import ConversionError
from .models import EncodedImage, InputFile
from .remote import RemoteConversionClient, RemoteResult, create_remote_client
from .utils import TempPool, split_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Conversion capabilities resolved once at startup."""

    codec: LocalCodec
    remote: RemoteConversionClient | None = None
    unsupported_extensions: tuple[str, ...] = ()
    unsupported_mime_types: tuple[str, ...] = ()

    @property
    def local_available(self) -> bool:
        return self.codec.available

    @property
    def remote_available(self) -> bool:
        return self.remote is not None

    def codec_rejects(self, source: InputFile) -> bool:
        _, suffix = split_name(source.name)
        if suffix.lower() in self.unsupported_extensions:
            return True
        return (source.content_type or "").lower() in self.unsupported_mime_types


def resolve_capabilities(config: AppConfig, **remote_kwargs: Any) -> Capabilities:
    return Capabilities(
        codec=probe_codec(config.codec),
        remote=create_remote_client(config.remote, **remote_kwargs),
        unsupported_extensions=tuple(ext.lower() for ext in config.codec.unsupported_extensions),
        unsupported_mime_types=tuple(mime.lower() for mime in config.codec.unsupported_mime_types),
    )


class ConversionStrategy:
    name = "base"

    def convert_image(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> EncodedImage:
        raise NotImplementedError

    def rasterize(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> list[EncodedImage]:
        raise NotImplementedError


class LocalOnly(ConversionStrategy):
    name = "local"

    def __init__(self, codec: LocalCodec) -> None:
        self._codec = codec

    def convert_image(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> EncodedImage:
        result = self._codec.convert(source.data, target, quality, max_dimension)
        if isinstance(result, Unsupported):
            raise ConversionError("LOCAL_UNSUPPORTED", f"Local codec cannot convert {source.name}: {result.reason}")
        return result

    def rasterize(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> list[EncodedImage]:
        result = self._codec.rasterize_document(source.data, target, quality, max_dimension)
        if isinstance(result, Unsupported):
            raise ConversionError("LOCAL_UNSUPPORTED", f"Cannot rasterize {source.name} locally: {result.reason}")
        return result


class RemoteOnly(ConversionStrategy):
    name = "remote"

    def __init__(self, remote: RemoteConversionClient) -> None:
        self._remote = remote

    def convert_image(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> EncodedImage:
        result = self._remote.convert(source.data, source.name, target.value, pool)
        return self._encoded(result)[0]

    def rasterize(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> list[EncodedImage]:
        result = self._remote.convert(source.data, source.name, target.value, pool, input_format="pdf")
        return self._encoded(result)

    def _encoded(self, result: RemoteResult) -> list[EncodedImage]:
        if not result.outputs:
            raise ConversionError("REMOTE_NO_OUTPUT", f"Remote job {result.job_id} produced no files")
        encoded = []
        for output in result.outputs:
            _, suffix = split_name(output.filename)
            encoded.append(
                EncodedImage(
                    data=output.data,
                    content_type=output.content_type,
                    extension=suffix.lstrip(".").lower(),
                    job_id=result.job_id,
                )
            )
        return encoded


class LocalWithRemoteFallback(ConversionStrategy):
    name = "local+remote"

    def __init__(self, local: LocalOnly, remote: RemoteOnly) -> None:
        self._local = local
        self._remote = remote

    def convert_image(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> EncodedImage:
        try:
            return self._local.convert_image(source, target, quality, max_dimension, pool)
        except Exception as exc:
            logger.warning("Local conversion of %s failed, using remote service: %s", source.name, exc)
        return self._remote.convert_image(source, target, quality, max_dimension, pool)

    def rasterize(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> list[EncodedImage]:
        try:
            return self._local.rasterize(source, target, quality, max_dimension, pool)
        except Exception as exc:
            logger.warning("Local rasterization of %s failed, using remote service: %s", source.name, exc)
        return self._remote.rasterize(source, target, quality, max_dimension, pool)


class Unavailable(ConversionStrategy):
    name = "unavailable"

    def _fail(self, source: InputFile) -> ConversionError:
        return ConversionError(
            "NO_CODEC", f"No local codec and remote conversion not configured for {source.name}"
        )

    def convert_image(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> EncodedImage:
        raise self._fail(source)

    def rasterize(
        self, source: InputFile, target: TargetFormat, quality: int, max_dimension: int, pool: TempPool
    ) -> list[EncodedImage]:
        raise self._fail(source)


def select_strategy(source: InputFile, capabilities: Capabilities) -> ConversionStrategy:
    remote = RemoteOnly(capabilities.remote) if capabilities.remote is not None else None
    if remote is not None and capabilities.codec_rejects(source):
        return remote
    if capabilities.local_available:
        local = LocalOnly(capabilities.codec)
        return LocalWithRemoteFallback(local, remote) if remote is not None else local
    if remote is not None:
        return remote
    return Unavailable()


__all__ = [
    "Capabilities",
    "ConversionStrategy",
    "LocalOnly",
    "LocalWithRemoteFallback",
    "RemoteOnly",
    "Unavailable",
    "resolve_capabilities",
    "select_strategy",
]
