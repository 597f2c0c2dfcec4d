from __future__ import annotations

import io
import zipfile

import pytest

from pdftool.errors import ConversionError
from pdftool.models import Artifact, BatchResult, ConversionOutcome
from pdftool.packaging import (
    JOBS_HEADER,
    NOTE_HEADER,
    build_archive,
    content_disposition,
    package_outputs,
)


def batch_of(*outcomes: ConversionOutcome) -> BatchResult:
    return BatchResult(request_id="req-1", outcomes=list(outcomes))


def test_single_artifact_sent_directly() -> None:
    outcome = ConversionOutcome(source="a.png", artifacts=[Artifact("a.jpg", b"jpg", "image/jpeg")])
    packaged = package_outputs(batch_of(outcome), bundle=False)
    assert not packaged.archived
    assert packaged.body == b"jpg"
    assert packaged.content_type == "image/jpeg"
    assert packaged.response_headers()["Content-Disposition"] == 'attachment; filename="a.jpg"'
    assert NOTE_HEADER not in packaged.headers


def test_degraded_single_artifact_carries_note() -> None:
    note = "Remote job job-9 failed: 変換 error"
    outcome = ConversionOutcome(
        source="a.heic",
        artifacts=[Artifact("a_original.heic", b"raw", "image/heic", note=note)],
        note=note,
        degraded=True,
        job_ids=["job-9"],
    )
    packaged = package_outputs(batch_of(outcome), bundle=False)
    packaged.headers[NOTE_HEADER].encode("latin-1")
    assert packaged.headers[NOTE_HEADER].startswith("Remote job job-9 failed")
    assert packaged.headers[JOBS_HEADER] == "job-9"


def test_many_artifacts_archived_with_unique_names() -> None:
    first = ConversionOutcome(source="a.png", artifacts=[Artifact("a.jpg", b"1", "image/jpeg")])
    second = ConversionOutcome(source="a.jpeg", artifacts=[Artifact("a.jpg", b"2", "image/jpeg")])
    packaged = package_outputs(batch_of(first, second), bundle=False)
    assert packaged.archived
    assert packaged.content_type == "application/zip"
    assert packaged.filename.endswith(".zip")
    with zipfile.ZipFile(io.BytesIO(packaged.body)) as archive:
        assert archive.namelist() == ["a.jpg", "a-2.jpg"]
        assert archive.read("a-2.jpg") == b"2"


def test_bundle_forces_archive() -> None:
    outcome = ConversionOutcome(source="a.png", artifacts=[Artifact("a.jpg", b"jpg", "image/jpeg")])
    packaged = package_outputs(batch_of(outcome), bundle=True, archive_name="out.zip")
    assert packaged.archived
    assert packaged.filename == "out.zip"


def test_archive_is_deterministic() -> None:
    artifacts = [Artifact("x.png", b"x" * 100, "image/png"), Artifact("y.png", b"y", "image/png")]
    assert build_archive(artifacts) == build_archive(artifacts)


def test_nothing_to_package() -> None:
    with pytest.raises(ConversionError) as excinfo:
        package_outputs(batch_of(ConversionOutcome(source="a.png")), bundle=False)
    assert excinfo.value.code == "NO_OUTPUTS"


def test_content_disposition_non_ascii() -> None:
    header = content_disposition("résumé scan.pdf")
    header.encode("latin-1")
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9%20scan.pdf" in header
