from __future__ import annotations

import hashlib
import os
import re
import shutil
import tempfile
import time
from collections.abc import Iterable
from pathlib import Path, PurePath
from types import TracebackType


SAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def slugify(value: str, max_length: int = 120) -> str:
    normalized = SAFE_FILENAME_RE.sub("-", value.strip())
    normalized = re.sub("-+", "-", normalized)
    normalized = normalized.replace("-.", ".")
    normalized = normalized.strip("-._")
    if not normalized:
        normalized = "file"
    if len(normalized) > max_length:
        normalized = normalized[:max_length]
    return normalized


def generate_run_id(prefix: str = "run") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def epoch_ms() -> int:
    return int(time.time() * 1000)


def split_name(name: str) -> tuple[str, str]:
    """Return ``(stem, suffix)`` of an uploaded file name, ignoring any directory part."""

    pure = PurePath(name.replace("\\", "/")).name or "file"
    stem = PurePath(pure).stem or "file"
    return stem, PurePath(pure).suffix


def unique_names(names: Iterable[str]) -> list[str]:
    """Resolve duplicate archive entry names by suffixing ``-2``, ``-3`` in order."""

    seen: set[str] = set()
    resolved: list[str] = []
    for name in names:
        candidate = name
        if candidate in seen:
            stem, suffix = split_name(name)
            counter = 2
            while f"{stem}-{counter}{suffix}" in seen:
                counter += 1
            candidate = f"{stem}-{counter}{suffix}"
        seen.add(candidate)
        resolved.append(candidate)
    return resolved


class TempPool:
    """Request-scoped temporary directory.

    Components create files inside it and delete them themselves; the whole
    directory is removed when the pool is closed, whatever the exit path.
    """

    def __init__(self, root: Path | None = None, *, prefix: str = "pdftool-") -> None:
        self._root = root
        self._prefix = prefix
        self._dir: Path | None = None

    @property
    def directory(self) -> Path:
        if self._dir is None:
            raise RuntimeError("TempPool is not open")
        return self._dir

    def open(self) -> "TempPool":
        if self._dir is None:
            if self._root is not None:
                self._root.mkdir(parents=True, exist_ok=True)
            self._dir = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._root))
        return self

    def close(self) -> None:
        if self._dir is not None:
            shutil.rmtree(self._dir, ignore_errors=True)
            self._dir = None

    def new_path(self, suffix: str = "", stem: str = "tmp") -> Path:
        return self.directory / f"{slugify(stem, max_length=40)}_{generate_run_id('t')}{suffix}"

    def write(self, data: bytes, suffix: str = "", stem: str = "tmp") -> Path:
        path = self.new_path(suffix, stem)
        path.write_bytes(data)
        return path

    def __enter__(self) -> "TempPool":
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def remove_quietly(paths: Iterable[Path]) -> None:
    for path in paths:
        path.unlink(missing_ok=True)
