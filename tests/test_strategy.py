from __future__ import annotations

import httpx
import pytest

from pdftool.codec import LocalCodec
from pdftool.config import RemoteConfig
from pdftool.detection import TargetFormat
from pdftool.errors import ConversionError
from pdftool.models import InputFile
from pdftool.remote import RemoteConversionClient
from pdftool.strategy import (
    Capabilities,
    LocalOnly,
    LocalWithRemoteFallback,
    RemoteOnly,
    Unavailable,
    select_strategy,
)
from pdftool.utils import TempPool


def remote_handler(request: httpx.Request) -> httpx.Response:
    if request.method == "POST" and request.url.path == "/v2/jobs":
        form = {"url": "https://upload.test/form", "parameters": {}}
        tasks = [{"name": "import-my-file", "result": {"form": form}}]
        return httpx.Response(201, json={"data": {"id": "job-7", "tasks": tasks}})
    if request.url.host == "upload.test":
        return httpx.Response(204)
    if request.method == "GET" and request.url.path == "/v2/jobs/job-7":
        export = {
            "name": "export-my-file",
            "status": "finished",
            "result": {"files": [{"filename": "remote.jpg", "url": "https://files.test/remote.jpg"}]},
        }
        return httpx.Response(200, json={"data": {"id": "job-7", "status": "finished", "tasks": [export]}})
    if request.url.host == "files.test":
        return httpx.Response(200, content=b"\xff\xd8\xffremote")
    return httpx.Response(404)


def remote_client() -> RemoteConversionClient:
    config = RemoteConfig(base_url="https://remote.test/v2", api_key="secret", max_polls=2)
    return RemoteConversionClient(
        config,
        http_client=httpx.Client(transport=httpx.MockTransport(remote_handler)),
        sleep=lambda _: None,
    )


def capabilities(*, local: bool = True, remote: bool = False) -> Capabilities:
    return Capabilities(
        codec=LocalCodec(available=local, reason=None if local else "missing codec libraries"),
        remote=remote_client() if remote else None,
        unsupported_extensions=(".heic", ".heif"),
        unsupported_mime_types=("image/heic", "image/heif"),
    )


PHOTO = InputFile("photo.png", "image/png", b"")
HEIC = InputFile("IMG_1.heic", "image/heic", b"")


def test_selection_without_remote() -> None:
    assert isinstance(select_strategy(PHOTO, capabilities()), LocalOnly)
    assert isinstance(select_strategy(PHOTO, capabilities(local=False)), Unavailable)


def test_selection_with_remote() -> None:
    caps = capabilities(remote=True)
    assert isinstance(select_strategy(PHOTO, caps), LocalWithRemoteFallback)
    assert isinstance(select_strategy(HEIC, caps), RemoteOnly)
    assert isinstance(select_strategy(PHOTO, capabilities(local=False, remote=True)), RemoteOnly)


def test_codec_rejects_by_mime_type() -> None:
    caps = capabilities(remote=True)
    declared = InputFile("upload", "image/HEIF", b"")
    assert caps.codec_rejects(declared)
    assert isinstance(select_strategy(declared, caps), RemoteOnly)


def test_unrecognized_heic_stays_local_without_remote() -> None:
    assert isinstance(select_strategy(HEIC, capabilities()), LocalOnly)


def test_fallback_uses_remote_after_local_failure(tmp_path) -> None:
    source = InputFile("broken.png", "image/png", b"not really a png")
    strategy = select_strategy(source, capabilities(remote=True))
    with TempPool(tmp_path / "pool") as pool:
        encoded = strategy.convert_image(source, TargetFormat.JPEG, 80, 2480, pool)
    assert encoded.job_id == "job-7"
    assert encoded.extension == "jpg"
    assert encoded.data.startswith(b"\xff\xd8\xff")


def test_local_only_raises_on_unsupported(tmp_path) -> None:
    source = InputFile("broken.png", "image/png", b"not really a png")
    with TempPool(tmp_path / "pool") as pool:
        with pytest.raises(ConversionError) as excinfo:
            LocalOnly(LocalCodec()).convert_image(source, TargetFormat.JPEG, 80, 2480, pool)
    assert excinfo.value.code == "LOCAL_UNSUPPORTED"


def test_unavailable_raises(tmp_path) -> None:
    with TempPool(tmp_path / "pool") as pool:
        with pytest.raises(ConversionError) as excinfo:
            Unavailable().convert_image(PHOTO, TargetFormat.JPEG, 80, 2480, pool)
    assert excinfo.value.code == "NO_CODEC"
