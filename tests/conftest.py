from __future__ import annotations

import io
from pathlib import Path
from typing import Callable

import pymupdf
import pytest
from PIL import Image

from pdftool.config import AppConfig, CodecConfig, RemoteConfig, RuntimeConfig


def build_config(tmp_path: Path, *, api_key: str | None = None, **runtime: object) -> AppConfig:
    config = AppConfig(
        runtime=RuntimeConfig(temp_dir=tmp_path / "pool", log_dir=tmp_path / "logs"),
        codec=CodecConfig(),
        remote=RemoteConfig(base_url="https://remote.test/v2", api_key=api_key, poll_interval_s=0),
    )
    for key, value in runtime.items():
        setattr(config.runtime, key, value)
    return config


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    def _make(
        fmt: str = "PNG",
        size: tuple[int, int] = (64, 48),
        color: tuple[int, ...] = (200, 30, 30),
        mode: str = "RGB",
    ) -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, size, color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_pdf() -> Callable[[int], bytes]:
    def _make(pages: int = 2) -> bytes:
        document = pymupdf.open()
        for index in range(pages):
            page = document.new_page(width=200, height=300)
            page.insert_text((40, 60), f"Page {index + 1}")
        data = document.tobytes()
        document.close()
        return data

    return _make


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return build_config(tmp_path)
