from __future__ import annotations

import json
from pathlib import Path

import httpx
import pymupdf
import pytest

from conftest import build_config
from pdftool.codec import LocalCodec
from pdftool.config import RemoteConfig
from pdftool.core import UNKNOWN_INPUT_NOTE, ConversionService
from pdftool.errors import ConversionError
from pdftool.models import InputFile
from pdftool.packaging import JOBS_HEADER, package_outputs
from pdftool.remote import RemoteConversionClient
from pdftool.strategy import Capabilities


def build_service(tmp_path: Path, **runtime: object) -> ConversionService:
    return ConversionService(build_config(tmp_path, **runtime))


def convert(service: ConversionService, files: list[InputFile], **options: object):
    return service.convert(service.build_request(files, **options))


def test_partial_failure_keeps_batch(tmp_path: Path, make_image) -> None:
    service = build_service(tmp_path)
    files = [
        InputFile("a.png", "image/png", make_image()),
        InputFile("b.png", "image/png", b"corrupted"),
        InputFile("c.jpg", "image/jpeg", make_image(fmt="JPEG")),
    ]
    batch = convert(service, files, target="jpeg")
    assert [outcome.status for outcome in batch.outcomes] == ["converted", "degraded", "converted"]
    assert [artifact.name for artifact in batch.artifacts] == ["a.jpg", "b_original.png", "c.jpg"]
    degraded = batch.outcomes[1]
    assert degraded.note
    assert batch.artifacts[1].data == b"corrupted"


def test_zero_files_is_rejected(tmp_path: Path) -> None:
    service = build_service(tmp_path)
    with pytest.raises(ConversionError) as excinfo:
        convert(service, [], target="pdf")
    assert excinfo.value.code == "NO_FILES"


def test_request_limits(tmp_path: Path, make_image) -> None:
    service = build_service(tmp_path, max_files=2)
    files = [InputFile(f"{index}.png", "image/png", make_image()) for index in range(3)]
    with pytest.raises(ConversionError) as too_many:
        service.build_request(files, target="png")
    assert too_many.value.code == "TOO_MANY_FILES"

    tiny = build_service(tmp_path, max_upload_mb=0)
    with pytest.raises(ConversionError) as too_big:
        tiny.build_request(files[:1], target="png")
    assert too_big.value.code == "SIZE_LIMIT"

    with pytest.raises(ConversionError) as bad_target:
        service.build_request(files[:1], target="gif")
    assert bad_target.value.code == "UNSUPPORTED_FORMAT"


def test_all_images_combine_into_one_pdf(tmp_path: Path, make_image) -> None:
    service = build_service(tmp_path)
    files = [
        InputFile("one.png", "image/png", make_image()),
        InputFile("two.jpg", "image/jpeg", make_image(fmt="JPEG")),
    ]
    batch = convert(service, files, target="pdf")
    assert len(batch.artifacts) == 1
    combined = batch.artifacts[0]
    assert combined.name.endswith(".pdf")
    assert combined.content_type == "application/pdf"
    with pymupdf.open(stream=combined.data, filetype="pdf") as pdf:
        assert pdf.page_count == 2


def test_mixed_batch_to_pdf(tmp_path: Path, make_image, make_pdf) -> None:
    service = build_service(tmp_path)
    pdf_bytes = make_pdf(2)
    files = [
        InputFile("photo.png", "image/png", make_image()),
        InputFile("doc.pdf", "application/pdf", pdf_bytes),
    ]
    batch = convert(service, files, target="pdf")
    assert [artifact.name for artifact in batch.artifacts] == ["photo.pdf", "doc.pdf"]
    assert batch.artifacts[1].data == pdf_bytes


def test_pdf_compression_and_rasterization(tmp_path: Path, make_pdf) -> None:
    service = build_service(tmp_path)
    source = InputFile("doc.pdf", "application/pdf", make_pdf(2))

    compressed = convert(service, [source], target="pdf", compress_pdf=True)
    assert [artifact.name for artifact in compressed.artifacts] == ["doc_compressed.pdf"]

    pages = convert(service, [source], target="png")
    assert [artifact.name for artifact in pages.artifacts] == ["doc_page1.png", "doc_page2.png"]
    assert all(artifact.content_type == "image/png" for artifact in pages.artifacts)


def test_unknown_input_returned_as_is(tmp_path: Path) -> None:
    service = build_service(tmp_path)
    batch = convert(service, [InputFile("notes.txt", "text/plain", b"hello")], target="jpeg")
    outcome = batch.outcomes[0]
    assert outcome.degraded
    assert outcome.note == UNKNOWN_INPUT_NOTE
    assert batch.artifacts[0].name == "notes.txt"
    assert batch.artifacts[0].data == b"hello"


def test_parallel_batch_keeps_order(tmp_path: Path, make_image) -> None:
    service = build_service(tmp_path, parallelism=3)
    files = [InputFile(f"img{index}.png", "image/png", make_image()) for index in range(4)]
    batch = convert(service, files, target="webp")
    assert [artifact.name for artifact in batch.artifacts] == [f"img{index}.webp" for index in range(4)]


def test_request_log_written(tmp_path: Path, make_image) -> None:
    service = build_service(tmp_path)
    convert(
        service,
        [InputFile("a.png", "image/png", make_image()), InputFile("b.png", "image/png", b"bad")],
        target="jpeg",
    )
    lines = (tmp_path / "logs" / "requests.jsonl").read_text(encoding="utf-8").splitlines()
    entries = [json.loads(line) for line in lines]
    assert [entry["status"] for entry in entries] == ["converted", "degraded"]
    assert entries[0]["artifacts"] == ["a.jpg"]
    assert entries[0]["request_id"] == entries[1]["request_id"]


def test_temp_pool_empty_after_requests(tmp_path: Path, make_image, make_pdf, monkeypatch) -> None:
    service = build_service(tmp_path)
    pool_root = tmp_path / "pool"
    convert(
        service,
        [InputFile("a.png", "image/png", make_image()), InputFile("d.pdf", "application/pdf", make_pdf(1))],
        target="jpeg",
    )
    assert list(pool_root.iterdir()) == []

    def explode(request, pool):
        pool.write(b"partial", ".tmp")
        raise RuntimeError("fatal")

    monkeypatch.setattr(service, "_convert_all", explode)
    with pytest.raises(RuntimeError):
        convert(service, [InputFile("a.png", "image/png", make_image())], target="jpeg")
    assert list(pool_root.iterdir()) == []


def test_failed_compression_returns_original(tmp_path: Path) -> None:
    service = build_service(tmp_path)
    original = b"%PDF-1.4 not really a document"
    batch = convert(service, [InputFile("doc.pdf", "application/pdf", original)], target="pdf", compress_pdf=True)
    outcome = batch.outcomes[0]
    assert outcome.status == "degraded"
    assert outcome.note
    assert [artifact.name for artifact in batch.artifacts] == ["doc_original.pdf"]
    assert batch.artifacts[0].data == original
    assert batch.artifacts[0].note == outcome.note


def failing_remote_handler(request: httpx.Request) -> httpx.Response:
    if request.method == "POST" and request.url.path == "/v2/jobs":
        form = {"url": "https://upload.test/form", "parameters": {}}
        tasks = [{"name": "import-my-file", "result": {"form": form}}]
        return httpx.Response(201, json={"data": {"id": "job-x", "tasks": tasks}})
    if request.url.host == "upload.test":
        return httpx.Response(201)
    if request.method == "GET" and request.url.path == "/v2/jobs/job-x":
        return httpx.Response(200, json={"data": {"id": "job-x", "status": "error", "tasks": []}})
    return httpx.Response(404)


def test_remote_failure_degrades_only_that_file(tmp_path: Path, make_image) -> None:
    config = build_config(tmp_path)
    remote = RemoteConversionClient(
        RemoteConfig(base_url="https://remote.test/v2", api_key="secret", max_polls=3),
        http_client=httpx.Client(transport=httpx.MockTransport(failing_remote_handler)),
        sleep=lambda _: None,
    )
    capabilities = Capabilities(
        codec=LocalCodec(),
        remote=remote,
        unsupported_extensions=config.codec.unsupported_extensions,
        unsupported_mime_types=config.codec.unsupported_mime_types,
    )
    service = ConversionService(config, capabilities)
    files = [
        InputFile("a.png", "image/png", make_image()),
        InputFile("b.heic", "image/heic", b"heic-bytes"),
        InputFile("c.jpg", "image/jpeg", make_image(fmt="JPEG")),
    ]
    batch = convert(service, files, target="jpeg")
    service.close()

    assert [artifact.name for artifact in batch.artifacts] == ["a.jpg", "b_original.heic", "c.jpg"]
    assert [outcome.strategy for outcome in batch.outcomes] == ["local+remote", "remote", "local+remote"]
    assert batch.outcomes[1].degraded
    assert batch.artifacts[1].data == b"heic-bytes"
    assert batch.job_ids == ["job-x"]
    packaged = package_outputs(batch, bundle=False)
    assert packaged.headers[JOBS_HEADER] == "job-x"
    assert list((tmp_path / "pool").iterdir()) == []


def test_unwritable_request_log_keeps_result(tmp_path: Path, make_image) -> None:
    blocked = tmp_path / "blocked"
    blocked.write_text("not a directory", encoding="utf-8")
    service = build_service(tmp_path, log_dir=blocked)
    batch = convert(service, [InputFile("a.png", "image/png", make_image())], target="jpeg")
    assert [artifact.name for artifact in batch.artifacts] == ["a.jpg"]
