from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Sequence
from urllib.parse import quote
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from .errors import ConversionError
from .models import Artifact, BatchResult
from .utils import epoch_ms, slugify, unique_names

ARCHIVE_CONTENT_TYPE = "application/zip"
ARCHIVE_COMPRESSLEVEL = 6
NOTE_HEADER = "X-Note"
JOBS_HEADER = "X-Remote-Jobs"

_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True, slots=True)
class PackagedOutput:
    body: bytes
    content_type: str
    filename: str
    headers: dict[str, str] = field(default_factory=dict)
    archived: bool = False

    def response_headers(self) -> dict[str, str]:
        headers = {"Content-Disposition": content_disposition(self.filename)}
        headers.update(self.headers)
        return headers


def header_safe(value: str) -> str:
    flattened = " ".join(value.split())
    return flattened.encode("latin-1", "replace").decode("latin-1")


def content_disposition(filename: str) -> str:
    fallback = slugify(filename)
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def build_archive(artifacts: Sequence[Artifact]) -> bytes:
    """Write *artifacts* into a ZIP with stable names, timestamps and compression."""

    buffer = io.BytesIO()
    names = unique_names(artifact.name for artifact in artifacts)
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED, compresslevel=ARCHIVE_COMPRESSLEVEL) as archive:
        for name, artifact in zip(names, artifacts):
            info = ZipInfo(name, date_time=_ZIP_TIMESTAMP)
            info.external_attr = 0o644 << 16
            archive.writestr(info, artifact.data, compress_type=ZIP_DEFLATED, compresslevel=ARCHIVE_COMPRESSLEVEL)
    return buffer.getvalue()


def package_outputs(batch: BatchResult, *, bundle: bool, archive_name: str | None = None) -> PackagedOutput:
    artifacts = batch.artifacts
    if not artifacts:
        raise ConversionError("NO_OUTPUTS", "Nothing to package")
    headers: dict[str, str] = {}
    if batch.job_ids:
        headers[JOBS_HEADER] = ",".join(batch.job_ids)
    if bundle or len(artifacts) > 1:
        return PackagedOutput(
            body=build_archive(artifacts),
            content_type=ARCHIVE_CONTENT_TYPE,
            filename=archive_name or f"pdftool-{epoch_ms()}.zip",
            headers=headers,
            archived=True,
        )
    single = artifacts[0]
    if single.note:
        headers[NOTE_HEADER] = header_safe(single.note)
    return PackagedOutput(
        body=single.data,
        content_type=single.content_type or "application/octet-stream",
        filename=single.name,
        headers=headers,
    )


__all__ = [
    "ARCHIVE_CONTENT_TYPE",
    "JOBS_HEADER",
    "NOTE_HEADER",
    "PackagedOutput",
    "build_archive",
    "content_disposition",
    "header_safe",
    "package_outputs",
]
