"""Request helpers shared by the routers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from fastapi import UploadFile

from pdftool.core import ConversionService
from pdftool.models import InputFile

T = TypeVar("T")

_TRUE_VALUES = {"1", "true", "yes", "on"}


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run the blocking conversion call on a worker thread; remote polling sleeps there."""

    return await asyncio.to_thread(func, *args, **kwargs)


def parse_flag(value: str | bool | None) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


async def read_uploads(uploads: Sequence[UploadFile], service: ConversionService) -> list[InputFile]:
    """Read every upload once, rejecting files above the configured size ceiling."""

    files: list[InputFile] = []
    for upload in uploads:
        content = await upload.read()
        source = InputFile(
            name=upload.filename or "upload",
            content_type=upload.content_type,
            data=content,
        )
        service.ensure_size(source)
        files.append(source)
    return files


__all__ = ["parse_flag", "read_uploads", "run_sync"]
